"""
troposphere resources for the workload DNS custom resources

Adding one of these resources to a Template also adds, once per template:

- the ``WorkloadDnsCodeBucket`` and ``WorkloadDnsCodeKey`` parameters, the location of the
  zipped ``workload_dns`` package
- an execution role shared by every handler
- the Lambda function for the resource's handler

and adds the IAM permissions the handler needs to the shared role.

"""

from importlib.metadata import PackageNotFoundError, version

import troposphere.awslambda as awslambda
import troposphere.iam as iam
from awacs.aws import PolicyDocument, Statement, Allow, Action, Principal, Condition, StringEquals
from troposphere import GetAtt, Parameter, Ref, Sub
from troposphere.cloudformation import CustomResource
from troposphere.validators import boolean

from workload_dns.extension import TemplateExtension

LAMBDA_ROLE = 'WorkloadDnsLambdaExecutionRole'
CODE_BUCKET = 'WorkloadDnsCodeBucket'
CODE_KEY = 'WorkloadDnsCodeKey'


def package_version():
    try:
        return version('workload-dns')
    except PackageNotFoundError:
        return 'unknown'


def add_helpers(template):
    """
    Add the code location parameters and the shared execution role to the template

    This only needs to be called manually if for some reason the monkey patching doesn't work.

    """

    if CODE_BUCKET not in template.parameters:
        template.add_parameter(
            Parameter(CODE_BUCKET, Type='String', Description='S3 bucket with the workload DNS Lambda code')
        )

    if CODE_KEY not in template.parameters:
        template.add_parameter(
            Parameter(CODE_KEY, Type='String', Description='S3 key of the workload DNS Lambda code zip')
        )

    if LAMBDA_ROLE not in template.resources:
        template.add_resource(
            iam.Role(
                LAMBDA_ROLE,
                AssumeRolePolicyDocument=PolicyDocument(
                    Version='2012-10-17',
                    Statement=[
                        Statement(
                            Effect=Allow,
                            Action=[Action('sts', 'AssumeRole')],
                            Principal=Principal('Service', 'lambda.amazonaws.com'),
                        )
                    ],
                ),
                ManagedPolicyArns=[
                    'arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole',
                ],
                Policies=[
                    iam.Policy(
                        PolicyName=Sub('${AWS::StackName}WorkloadDnsLambdaExecutionPolicy'),
                        PolicyDocument=PolicyDocument(
                            Version='2012-10-17',
                            Statement=[],
                        ),
                    )
                ],
            )
        )


def add_function(template, title, handler, description):
    if title not in template.resources:
        template.add_resource(
            awslambda.Function(
                title,
                Code=awslambda.Code(S3Bucket=Ref(CODE_BUCKET), S3Key=Ref(CODE_KEY)),
                Runtime='python3.12',
                Handler=handler,
                Timeout=900,
                Role=GetAtt(LAMBDA_ROLE, 'Arn'),
                Description=description,
                Metadata={
                    'Version': package_version(),
                },
            )
        )


def add_policy(template, policy_statement):
    policy_document = template.resources[LAMBDA_ROLE].Policies[0].PolicyDocument

    if policy_statement.properties not in [statement.properties for statement in policy_document.Statement]:
        policy_document.Statement.append(policy_statement)


ACM_STATEMENTS = [
    Statement(
        Effect=Allow,
        Action=[
            Action('acm', 'DeleteCertificate'),
            Action('acm', 'DescribeCertificate'),
        ],
        Resource=[Sub('arn:aws:acm:*:${AWS::AccountId}:certificate/*')],
    ),
    Statement(
        Effect=Allow,
        Action=[
            Action('acm', 'RequestCertificate'),
            Action('acm', 'AddTagsToCertificate'),
            Action('tag', 'GetResources'),
        ],
        Resource=['*'],
    ),
]

ROUTE53_STATEMENTS = [
    Statement(
        Effect=Allow,
        Action=[
            Action('route53', 'ChangeResourceRecordSets'),
            Action('route53', 'ListResourceRecordSets'),
        ],
        Resource=['arn:aws:route53:::hostedzone/*'],
    ),
    Statement(
        Effect=Allow,
        Action=[
            Action('route53', 'GetChange'),
            Action('route53', 'ListHostedZonesByName'),
        ],
        Resource=['*'],
    ),
]

STACK_STATEMENTS = [
    Statement(
        Effect=Allow,
        Action=[
            Action('cloudformation', 'DescribeStacks'),
            Action('cloudformation', 'UpdateStack'),
        ],
        Resource=[Sub('arn:${AWS::Partition}:cloudformation:${AWS::Region}:${AWS::AccountId}:stack/*')],
    ),
    Statement(
        Effect=Allow,
        Action=[Action('iam', 'PassRole')],
        Resource=['*'],
        Condition=Condition(StringEquals('iam:PassedToService', 'cloudformation.amazonaws.com')),
    ),
]

APP_RUNNER_STATEMENTS = [
    Statement(
        Effect=Allow,
        Action=[
            Action('apprunner', 'AssociateCustomDomain'),
            Action('apprunner', 'DisassociateCustomDomain'),
            Action('apprunner', 'DescribeCustomDomains'),
        ],
        Resource=[Sub('arn:${AWS::Partition}:apprunner:${AWS::Region}:${AWS::AccountId}:service/*')],
    ),
]


class WorkloadDnsResource(CustomResource, TemplateExtension):
    """
    A custom resource backed by one of the workload DNS handlers

    Subclasses name the handler's Lambda function and entrypoint, the IAM statements it
    needs and which properties hold roles it assumes.

    """

    function = None
    handler = None
    description = None
    statements = []
    role_properties = []

    def add_extension(self, template, add_resource):

        add_helpers(template)
        add_function(template, self.function, self.handler, self.description)

        for statement in self.statements:
            add_policy(template, statement)

        for role_property in self.role_properties:
            role_arn = self.properties.get(role_property, None)
            if role_arn is not None:
                add_policy(template, Statement(Effect=Allow, Action=[Action('sts', 'AssumeRole')], Resource=[role_arn]))

        return add_resource(self)

    def __init__(self, title, template=None, *args, **kwargs):
        super().__init__(
            title, template, *args, ServiceToken=GetAtt(self.function, 'Arn'), **kwargs
        )


class EnvironmentCertificate(WorkloadDnsResource):
    resource_type = 'Custom::EnvironmentCertificate'

    function = 'EnvironmentCertificateFunction'
    handler = 'workload_dns.env_certificate.handler'
    description = 'Cloudformation custom resource for the DNS validated environment certificate'
    statements = ACM_STATEMENTS + ROUTE53_STATEMENTS
    role_properties = ['RootDNSRole']

    props = {
        'AppName': (str, True),
        'EnvName': (str, True),
        'DomainName': (str, True),
        'Aliases': (str, False),
        'EnvHostedZoneId': (str, False),
        'RootDNSRole': (str, False),
        'Region': (str, False),
    }


class WorkloadCertificate(WorkloadDnsResource):
    resource_type = 'Custom::WorkloadCertificate'

    function = 'WorkloadCertificateFunction'
    handler = 'workload_dns.workload_certificate.handler'
    description = 'Cloudformation custom resource for the DNS validated certificate of a service'
    statements = ACM_STATEMENTS + ROUTE53_STATEMENTS
    role_properties = ['RootDNSRole']

    props = {
        'AppName': (str, True),
        'EnvName': (str, True),
        'ServiceName': (str, True),
        'DomainName': (str, True),
        'Aliases': ([str], False),
        'LoadBalancerDNS': (str, False),
        'EnvHostedZoneId': (str, False),
        'RootDNSRole': (str, False),
        'IsCloudFrontCertificate': (boolean, False),
    }


class CustomDomain(WorkloadDnsResource):
    resource_type = 'Custom::CustomDomain'

    function = 'CustomDomainFunction'
    handler = 'workload_dns.custom_domain.handler'
    description = 'Cloudformation custom resource for the alias records of an environment'
    statements = ROUTE53_STATEMENTS
    role_properties = ['AppDNSRole']

    props = {
        'AppName': (str, True),
        'EnvName': (str, True),
        'DomainName': (str, True),
        'Aliases': (str, False),
        'PublicAccessDNS': (str, True),
        'PublicAccessHostedZone': (str, True),
        'EnvHostedZoneId': (str, False),
        'AppDNSRole': (str, False),
    }


class WorkloadCustomDomain(WorkloadDnsResource):
    resource_type = 'Custom::WorkloadCustomDomain'

    function = 'WorkloadCustomDomainFunction'
    handler = 'workload_dns.custom_domain.workload_handler'
    description = 'Cloudformation custom resource for the alias records of a service'
    statements = ROUTE53_STATEMENTS
    role_properties = ['RootDNSRole']

    props = {
        'AppName': (str, True),
        'EnvName': (str, True),
        'ServiceName': (str, False),
        'DomainName': (str, True),
        'Aliases': ([str], False),
        'PublicAccessDNS': (str, True),
        'PublicAccessHostedZoneID': (str, True),
        'EnvHostedZoneId': (str, False),
        'RootDNSRole': (str, False),
    }


class EnvironmentController(WorkloadDnsResource):
    resource_type = 'Custom::EnvironmentController'

    function = 'EnvironmentControllerFunction'
    handler = 'workload_dns.env_controller.handler'
    description = 'Cloudformation custom resource for the workloads of an environment stack'
    statements = STACK_STATEMENTS

    props = {
        'EnvStack': (str, True),
        'Workload': (str, True),
        'Aliases': ([str], False),
        'Parameters': ([str], False),
    }


class DnsDelegation(WorkloadDnsResource):
    resource_type = 'Custom::DNSDelegation'

    function = 'DnsDelegationFunction'
    handler = 'workload_dns.dns_delegation.handler'
    description = 'Cloudformation custom resource for the delegation of a subdomain'
    statements = ROUTE53_STATEMENTS
    role_properties = ['RootDNSRole']

    props = {
        'DomainName': (str, True),
        'SubdomainName': (str, True),
        'NameServers': ([str], True),
        'RootDNSRole': (str, False),
        'RootHostedZoneId': (str, False),
    }


class CertificateReplicator(WorkloadDnsResource):
    resource_type = 'Custom::CertificateReplicator'

    function = 'CertificateReplicatorFunction'
    handler = 'workload_dns.certificate_replicator.handler'
    description = 'Cloudformation custom resource for a copy of a certificate in another region'
    statements = ACM_STATEMENTS

    props = {
        'AppName': (str, True),
        'EnvName': (str, True),
        'CertificateArn': (str, True),
        'EnvRegion': (str, True),
        'TargetRegion': (str, True),
    }


class AppRunnerCustomDomain(WorkloadDnsResource):
    resource_type = 'Custom::AppRunnerCustomDomain'

    function = 'AppRunnerCustomDomainFunction'
    handler = 'workload_dns.custom_domain_app_runner.handler'
    description = 'Cloudformation custom resource for the custom domain of an App Runner service'
    statements = APP_RUNNER_STATEMENTS + ROUTE53_STATEMENTS
    role_properties = ['AppDNSRole']

    props = {
        'ServiceARN': (str, True),
        'CustomDomain': (str, True),
        'AppDNSName': (str, False),
        'HostedZoneID': (str, False),
        'AppDNSRole': (str, False),
    }
