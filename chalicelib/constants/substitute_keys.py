to_db = {
    'id': 'id_',
    'name': 'name_',
    'status': 'status_',
    'notes': 'notes_'
}

from_db = {
    'partkey': None,
    'sortkey': None,
    'record_type': None,
    'company_id': None,
    'id_': 'id',
    'name_': 'name',
    'status_': 'status',
    'notes_': 'notes'
}
