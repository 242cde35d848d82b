from test.utils.fixtures import chalice_gateway, environment, fake_table  # noqa: F401
