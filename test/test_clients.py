from conftest import ROLE_ARN
from workload_dns.clients import Clients


def test_clients_are_created_once(aws):
    clients = Clients(aws, region='us-east-1')

    assert clients.acm() is clients.acm()
    assert clients.route53() is clients.route53()
    assert aws.calls.count(('acm', {'region_name': 'us-east-1'})) == 1
    assert aws.calls.count(('route53', {})) == 1


def test_cross_account_route53(aws):
    clients = Clients(aws, role_arn=ROLE_ARN, session_name='myapp-test-EnvCertificate')

    assert clients.cross_account_route53() is aws.app_route53
    assert clients.cross_account_route53() is aws.app_route53

    aws.sts.assume_role.assert_called_once_with(
        RoleArn=ROLE_ARN,
        RoleSessionName='myapp-test-EnvCertificate',
        DurationSeconds=900,
    )
    assert ('route53', {
        'aws_access_key_id': 'ASIAEXAMPLE',
        'aws_secret_access_key': 'secret',
        'aws_session_token': 'token',
    }) in aws.calls


def test_without_role_route53_is_local(aws):
    clients = Clients(aws)

    assert clients.cross_account_route53() is aws.route53
    aws.sts.assume_role.assert_not_called()


def test_session_name_is_truncated(aws):
    assert len(Clients(aws, session_name='x' * 100).session_name) == 64
