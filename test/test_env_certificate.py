from conftest import CERTIFICATE_ARN, ROLE_ARN, client_error
from workload_dns import env_certificate
from workload_dns.certificates import idempotency_token

PROPS = {
    'AppName': 'myapp',
    'EnvName': 'test',
    'DomainName': 'example.com',
    'Aliases': '{"frontend": ["www.example.com", "myapp.example.com"], "api": ["api.foobar.com"]}',
    'EnvHostedZoneId': 'ZENV',
    'RootDNSRole': ROLE_ARN,
}

SIBLING_ARN = 'arn:aws:acm:us-west-2:111111111111:certificate/22222222-2222-2222-2222-222222222222'


def option(domain_name):
    record_name = '_' + domain_name.lstrip('*.') + '.'
    return {
        'DomainName': domain_name,
        'ValidationMethod': 'DNS',
        'ResourceRecord': {'Name': record_name, 'Type': 'CNAME', 'Value': '_v.' + record_name},
    }


def issued_certificate(arn=CERTIFICATE_ARN, names=None, in_use_by=None):
    names = names or ['test.myapp.example.com', '*.test.myapp.example.com', 'www.example.com', 'myapp.example.com']
    return {
        'Certificate': {
            'CertificateArn': arn,
            'DomainName': names[0],
            'SubjectAlternativeNames': names,
            'Status': 'ISSUED',
            'InUseBy': in_use_by or [],
            'DomainValidationOptions': [option(name) for name in names],
        }
    }


def test_create(aws, invoke):
    aws.acm.describe_certificate.return_value = issued_certificate()

    response = invoke(env_certificate.handler, 'Create', PROPS)

    assert response['Status'] == 'SUCCESS', response['Reason']
    assert response['PhysicalResourceId'] == CERTIFICATE_ARN
    assert response['Data'] == {'Arn': CERTIFICATE_ARN}

    # The alias outside the application's zones is not on the certificate
    request = aws.acm.request_certificate.call_args.kwargs
    assert request['DomainName'] == 'test.myapp.example.com'
    assert request['SubjectAlternativeNames'] == ['*.test.myapp.example.com', 'www.example.com', 'myapp.example.com']
    assert request['IdempotencyToken'] == idempotency_token('f4ef1b10-c39a-44e3-99c7-4b6b0f0c5f8f')

    # One record for the environment domain and its wildcard
    assert aws.route53.change_resource_record_sets.call_count == 1
    assert aws.route53.change_resource_record_sets.call_args.kwargs['HostedZoneId'] == 'ZENV'

    # The application and root zone records use the assumed role
    zones = sorted(call.kwargs['HostedZoneId'] for call in aws.app_route53.change_resource_record_sets.call_args_list)
    assert zones == ['ZAPP', 'ZROOT']


def test_create_twice_requests_one_certificate(aws, invoke):
    aws.acm.describe_certificate.return_value = issued_certificate()

    invoke(env_certificate.handler, 'Create', PROPS)
    invoke(env_certificate.handler, 'Create', PROPS)

    tokens = {call.kwargs['IdempotencyToken'] for call in aws.acm.request_certificate.call_args_list}
    assert len(tokens) == 1


def test_create_waits_for_validation(aws, invoke):
    pending = issued_certificate()
    pending['Certificate']['Status'] = 'PENDING_VALIDATION'
    aws.acm.describe_certificate.side_effect = [issued_certificate(), pending, issued_certificate()]

    response = invoke(env_certificate.handler, 'Create', PROPS)

    assert response['Status'] == 'SUCCESS', response['Reason']
    assert aws.acm.describe_certificate.call_count == 3


def test_delete_keeps_records_of_other_certificates(aws, invoke):
    aws.acm.describe_certificate.side_effect = lambda CertificateArn: {
        CERTIFICATE_ARN: issued_certificate(),
        SIBLING_ARN: issued_certificate(SIBLING_ARN, ['test.myapp.example.com', '*.test.myapp.example.com']),
    }[CertificateArn]
    aws.tagging.get_paginator.return_value.paginate.return_value = [
        {'ResourceTagMappingList': [{'ResourceARN': CERTIFICATE_ARN}, {'ResourceARN': SIBLING_ARN}]}
    ]

    response = invoke(env_certificate.handler, 'Delete', PROPS, physical_resource_id=CERTIFICATE_ARN)

    assert response['Status'] == 'SUCCESS', response['Reason']

    # The environment domain record is still used by the sibling
    aws.route53.change_resource_record_sets.assert_not_called()

    deleted = sorted(
        call.kwargs['ChangeBatch']['Changes'][0]['ResourceRecordSet']['Name']
        for call in aws.app_route53.change_resource_record_sets.call_args_list
    )
    assert deleted == ['_myapp.example.com.', '_www.example.com.']
    assert all(
        call.kwargs['ChangeBatch']['Changes'][0]['Action'] == 'DELETE'
        for call in aws.app_route53.change_resource_record_sets.call_args_list
    )

    aws.acm.delete_certificate.assert_called_once_with(CertificateArn=CERTIFICATE_ARN)


def test_delete_waits_until_unused(aws, invoke):
    in_use = issued_certificate(in_use_by=['arn:aws:elasticloadbalancing:us-west-2:111111111111:loadbalancer/app/myalb/1'])
    aws.acm.describe_certificate.side_effect = [in_use, in_use, issued_certificate(), issued_certificate()]
    aws.tagging.get_paginator.return_value.paginate.return_value = [
        {'ResourceTagMappingList': [{'ResourceARN': CERTIFICATE_ARN}]}
    ]

    response = invoke(env_certificate.handler, 'Delete', PROPS, physical_resource_id=CERTIFICATE_ARN)

    assert response['Status'] == 'SUCCESS', response['Reason']
    aws.acm.delete_certificate.assert_called_once()


def test_delete_still_in_use(aws, invoke):
    aws.acm.describe_certificate.return_value = issued_certificate(
        in_use_by=['arn:aws:elasticloadbalancing:us-west-2:111111111111:loadbalancer/app/myalb/1']
    )

    response = invoke(env_certificate.handler, 'Delete', PROPS, physical_resource_id=CERTIFICATE_ARN)

    assert response['Status'] == 'FAILED'
    assert response['Reason'].startswith('Certificate still in use after checking for 12 attempts.')
    assert aws.acm.describe_certificate.call_count == 12

    # Nothing was cleaned up
    aws.route53.change_resource_record_sets.assert_not_called()
    aws.app_route53.change_resource_record_sets.assert_not_called()
    aws.acm.delete_certificate.assert_not_called()


def test_delete_without_certificate(aws, invoke):
    response = invoke(env_certificate.handler, 'Delete', PROPS, physical_resource_id='2026/10/19/[$LATEST]abcdef')

    assert response['Status'] == 'SUCCESS'
    aws.acm.describe_certificate.assert_not_called()


def test_delete_certificate_already_gone(aws, invoke):
    aws.acm.describe_certificate.side_effect = client_error('ResourceNotFoundException', 'Could not find certificate')

    response = invoke(env_certificate.handler, 'Delete', PROPS, physical_resource_id=CERTIFICATE_ARN)

    assert response['Status'] == 'SUCCESS'
    aws.acm.delete_certificate.assert_not_called()


def test_delete_with_a_sibling_already_deleted(aws, invoke):
    gone_arn = 'arn:aws:acm:us-west-2:111111111111:certificate/33333333-3333-3333-3333-333333333333'

    def describe_certificate(CertificateArn):
        if CertificateArn == gone_arn:
            raise client_error('ResourceNotFoundException', f'Could not find certificate {gone_arn}.')
        return issued_certificate()

    aws.acm.describe_certificate.side_effect = describe_certificate
    aws.tagging.get_paginator.return_value.paginate.return_value = [
        {'ResourceTagMappingList': [{'ResourceARN': CERTIFICATE_ARN}, {'ResourceARN': gone_arn}]}
    ]

    response = invoke(env_certificate.handler, 'Delete', PROPS, physical_resource_id=CERTIFICATE_ARN)

    assert response['Status'] == 'SUCCESS', response.get('Reason')
    assert aws.route53.change_resource_record_sets.call_count == 1
    assert aws.app_route53.change_resource_record_sets.call_count == 2
    aws.acm.delete_certificate.assert_called_once_with(CertificateArn=CERTIFICATE_ARN)


def test_unsupported_request_type(invoke):
    response = invoke(env_certificate.handler, 'Replace', PROPS)

    assert response['Status'] == 'FAILED'
    assert response['Reason'].startswith('Unsupported request type Replace')
