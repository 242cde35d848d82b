import os

from botocore.config import Config

main_boto_region = os.environ.get('MAIN_BOTO_REGION', 'sa-east-1')

# DynamoDB has cross region resources for optimisation for calls from various regions.
aws_config_ddb = Config(retries={'max_attempts': 30}, region_name=os.environ.get('AWS_REGION', main_boto_region))
