def _preflight(client, origin):
    return client.options(
        '/libro/consultar',
        headers={
            'Origin': origin,
            'Access-Control-Request-Method': 'GET',
            'Access-Control-Request-Headers': 'Authorization',
        },
    )


def test_preflight_from_allowed_origin(client):
    r = _preflight(client, 'http://localhost:3000')
    assert r.status_code == 200
    assert r.headers['access-control-allow-origin'] == 'http://localhost:3000'
    assert r.headers['access-control-allow-credentials'] == 'true'
    assert r.headers['access-control-max-age'] == '3600'
    assert 'PATCH' in r.headers['access-control-allow-methods']


def test_preflight_from_unknown_origin_rejected(client):
    r = _preflight(client, 'http://evil.example.com')
    assert r.status_code == 400
    assert 'access-control-allow-origin' not in r.headers


def test_simple_request_exposes_authorization_header(client, user_headers):
    r = client.get('/libro/consultar', headers={**user_headers, 'Origin': 'http://localhost:4200'})
    assert r.status_code == 200
    assert r.headers['access-control-allow-origin'] == 'http://localhost:4200'
    assert 'Authorization' in r.headers['access-control-expose-headers']


def test_unauthenticated_response_still_carries_cors_headers(client):
    r = client.get('/libro/consultar', headers={'Origin': 'http://127.0.0.1:3000'})
    assert r.status_code == 401
    assert r.headers['access-control-allow-origin'] == 'http://127.0.0.1:3000'
