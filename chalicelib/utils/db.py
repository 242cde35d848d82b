import functools
import os
import time
from random import uniform

import boto3 as boto3
from botocore.exceptions import ClientError

from chalicelib.constants import substitute_keys
from chalicelib.utils import data
from chalicelib.utils import exceptions
from chalicelib.utils.boto_clients import aws_config_ddb
from chalicelib.utils.logger import logger, log_exception

# For safe db operations
RETRY_EXCEPTIONS = ('ProvisionedThroughputExceededException', 'ThrottlingException')
need_return_capacity = ('put_item', 'get_item', 'update_item', 'delete_item')

_DB = None


def exp_db_backoff(func):
    """
        should be used for any atomic
        get/put item in the code
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger.debug(f'{func.__name__}:: args={args}, kwargs={kwargs}')
        max_retries = 15
        timeout_seed = uniform(0.1, 0.99)

        if func.__name__ not in need_return_capacity:
            raise RuntimeError("This decorator only for DynamoDB methods")
        kwargs.update({'ReturnConsumedCapacity': 'TOTAL'})

        for retries in range(max_retries):
            try:
                result = func(*args, **kwargs)
                logger.info(f'{func.__name__}:: SUCCESS')
                return result
            except ClientError as e:
                if e.response.get('Error', {}).get('Code') not in RETRY_EXCEPTIONS:
                    log_exception(e, msg=f'Got exception while trying to {func.__name__}: ')
                    raise
                logger.warning(f'{func.__name__}:: throttled, retry number {retries + 1}')
                time.sleep(min(timeout_seed * 2 ** retries, 10))

        raise exceptions.NumberOfRetriesExceeded(
            f"MaxNumber={max_retries} of DB retries has exceeded"
        )

    return wrapper


def get_table(table_name: str) -> boto3.session.Session.resource:
    if os.environ.get('ENDPOINT_URL'):
        table = boto3.resource('dynamodb', endpoint_url=os.environ.get('ENDPOINT_URL'),
                               config=aws_config_ddb).Table(table_name)
    else:
        table = boto3.resource('dynamodb', config=aws_config_ddb).Table(table_name)

    table.put_item = exp_db_backoff(table.put_item)
    table.get_item = exp_db_backoff(table.get_item)
    table.update_item = exp_db_backoff(table.update_item)
    table.delete_item = exp_db_backoff(table.delete_item)

    return table


def get_gen_table():
    global _DB
    if _DB is None:
        _DB = get_table(os.environ.get('GEN_TABLE_NAME'))
    return _DB


def put_db_record(item: dict, table=None):
    (table or get_gen_table)().put_item(Item=item)


def delete_db_record(key: dict, table=None):
    (table or get_gen_table)().delete_item(Key=key)


def update_db_record(key: dict, update_body: dict, allowed_attrs_to_update: list,
                     allowed_attrs_to_delete: list, table=None):
    table = table or get_gen_table
    data.substitute_keys(dict_to_process=update_body, base_keys=substitute_keys.to_db)
    set_expr, expr_attr_values, remove_expr = generate_update_expression(
        update_body=update_body,
        allowed_attrs_to_update=allowed_attrs_to_update,
        allowed_attrs_to_delete=allowed_attrs_to_delete
    )
    update_item_dict = {"Key": key, "ReturnValues": "UPDATED_NEW", }

    set_response = None
    if set_expr:
        set_item_dict = {
            **update_item_dict,
            "UpdateExpression": set_expr,
            "ExpressionAttributeValues": expr_attr_values
        }
        set_response = table().update_item(**set_item_dict)

    remove_response = None
    if remove_expr:
        remove_item_dict = {
            **update_item_dict,
            "UpdateExpression": remove_expr
        }
        remove_response = table().update_item(**remove_item_dict)

    return set_response, remove_response


def generate_update_expression(update_body: dict, allowed_attrs_to_update: list, allowed_attrs_to_delete: list):
    """
    Generate expressions to update and delete attributes.
    if a key of update_body is empty - the attribute is deleted, else - attribute is updated
    """
    expr_attr_values = {}
    set_expr = 'SET '
    remove_expr = 'REMOVE '
    return_value = [None, None, None]
    for field in allowed_attrs_to_update:
        field_value = update_body.get(field, None)
        if field_value is not None:
            # if field is in update_body but is equal to empty string, list etc. - delete field
            if field_value in ['', [], {}] and field in allowed_attrs_to_delete:
                remove_expr += f'{field}, '
            else:
                # if field is in update_body and has a real value - update field
                expr_attr_values[f':{field}'] = update_body.get(field)
                set_expr += f'{field}=:{field}, '
        else:
            continue

    if set_expr != 'SET ':
        return_value[0] = set_expr[:-2]
        return_value[1] = expr_attr_values

    if remove_expr != 'REMOVE ':
        return_value[2] = remove_expr[:-2]

    return return_value


def increment_counter(partkey: str, sortkey: str, table=None) -> int:
    """
    Atomic counter, used for sequential numbers (ADD creates the attribute on the first call)
    """
    response = (table or get_gen_table)().update_item(
        Key={'partkey': partkey, 'sortkey': sortkey},
        UpdateExpression='ADD counter_value :inc',
        ExpressionAttributeValues={':inc': 1},
        ReturnValues='UPDATED_NEW'
    )
    return int(response['Attributes']['counter_value'])


def get_db_item(partkey, sortkey, table=None):
    result = (table or get_gen_table)().get_item(
        Key={
            'partkey': partkey,
            'sortkey': sortkey
        }
    )

    if 'Item' in result:
        return result['Item']
    else:
        logger.error(f"get_db_item ::: record partkey={partkey} sortkey={sortkey} not found")
        raise exceptions.RecordNotFound(f'record partkey={partkey} sortkey={sortkey} not found')


def query_items_paginated(
        key_condition_expression,
        filter_expression=None,
        projection_expression=None,
        table=None,
        index_name=None,
        expr_attr_names=None,
        limit=None,
        start_key=None,
        scan_index_forward=True
):
    kwargs = {'KeyConditionExpression': key_condition_expression}
    if filter_expression:
        kwargs.update({'FilterExpression': filter_expression})

    if projection_expression:
        kwargs.update({'ProjectionExpression': projection_expression})

    if expr_attr_names:
        kwargs.update({'ExpressionAttributeNames': expr_attr_names})

    if limit:
        kwargs.update({'Limit': int(limit)})

    if index_name:
        kwargs.update({'IndexName': index_name})

    if start_key:
        kwargs.update({'ExclusiveStartKey': start_key})

    if not scan_index_forward:
        kwargs.update({'ScanIndexForward': False})

    resp = (table or get_gen_table)().query(**kwargs)
    return resp['Items'], resp.get('LastEvaluatedKey')


def query_items_paged(key_condition_expression, filter_expression=None, projection_expression=None,
                      table=None, index_name=None, expr_attr_names=None, scan_index_forward=True):
    """ This method shall be used whenever you think the query will
        return more than 1mb of data at once"""
    all_items = []
    items, last_evaluated_key = query_items_paginated(
        key_condition_expression,
        filter_expression=filter_expression,
        projection_expression=projection_expression,
        table=table,
        index_name=index_name,
        expr_attr_names=expr_attr_names,
        scan_index_forward=scan_index_forward
    )
    all_items.extend(items)

    while last_evaluated_key is not None:
        items, last_evaluated_key = query_items_paginated(
            key_condition_expression,
            filter_expression=filter_expression,
            projection_expression=projection_expression,
            table=table,
            index_name=index_name,
            expr_attr_names=expr_attr_names,
            start_key=last_evaluated_key,
            scan_index_forward=scan_index_forward
        )
        all_items.extend(items)

    return all_items
