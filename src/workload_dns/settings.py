"""
Timing and naming constants shared by the custom resource handlers

"""

# The invoking Lambda has a 15 minute hard limit, report before CloudFormation is left waiting.
DEADLINE_SECONDS = 14 * 60 + 30

# Time kept back from the Lambda's remaining time to deliver the response.
RESPONSE_MARGIN_SECONDS = 10

ATTEMPTS_VALIDATION_OPTIONS_READY = 10

ATTEMPTS_RECORD_SETS_CHANGE = 10
DELAY_RECORD_SETS_CHANGE_IN_S = 30

ATTEMPTS_CERTIFICATE_VALIDATED = 19
DELAY_CERTIFICATE_VALIDATED_IN_S = 30

ATTEMPTS_CERTIFICATE_NOT_IN_USE = 12
DELAY_CERTIFICATE_NOT_IN_USE_IN_S = 30

ATTEMPTS_STACK_UPDATE = 29
DELAY_STACK_UPDATE_IN_S = 30

# How many times a stack update may be restarted because another workload was updating the stack.
ATTEMPTS_STACK_CONCURRENT_UPDATE = 10

ATTEMPTS_CUSTOM_DOMAIN_PENDING_VALIDATION = 10
DELAY_CUSTOM_DOMAIN_PENDING_VALIDATION_IN_S = 3

ATTEMPTS_CUSTOM_DOMAIN_DISASSOCIATED = 10
DELAY_CUSTOM_DOMAIN_DISASSOCIATED_IN_S = 30

RECORD_TTL = 60

# Assumed role credentials only need to outlive a single invocation.
ASSUME_ROLE_DURATION_SECONDS = 900

# CloudFront only accepts certificates from us-east-1
CLOUDFRONT_CERTIFICATE_REGION = 'us-east-1'

TAG_APPLICATION = 'copilot-application'
TAG_ENVIRONMENT = 'copilot-environment'
TAG_SERVICE = 'copilot-service'
