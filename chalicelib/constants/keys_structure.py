establishments_pk = 'establishments_{company_id}'
establishments_sk = 'settings'

delivery_zones_pk = 'delivery_zones_{company_id}'
delivery_zones_sk = '{zone_id}'

products_pk = 'products_{company_id}'
products_sk = '{product_id}'

orders_pk = 'orders_{company_id}'
orders_sk = '{order_id}'

cash_registers_pk = 'cash_registers_{company_id}'
cash_registers_sk = '{register_id}'

cash_transactions_pk = 'cash_transactions_{company_id}_{register_id}'
cash_transactions_sk = '{created_at}_{transaction_id}'

counters_pk = 'counters_{company_id}'
counters_sk = '{counter_name}'
