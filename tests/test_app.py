def test_health_endpoints(client):
    for path in ('/health', '/health-check'):
        response = client.get(path)
        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'


def test_index_lists_endpoints(client):
    response = client.get('/')

    assert response.status_code == 200
    body = response.get_json()
    assert 'projects' in body['endpoints']
    assert body['rate_limits']['auth']['login'] == '10 per minute'


def test_unknown_route_uses_envelope(client):
    response = client.get('/nope')

    assert response.status_code == 404
    assert response.get_json() == {
        'success': False,
        'message': 'The requested resource does not exist',
        'data': None,
        'statusCode': 404
    }


def test_method_not_allowed_uses_envelope(client):
    response = client.patch('/health')

    assert response.status_code == 405
    assert response.get_json()['statusCode'] == 405


def test_security_headers(client):
    response = client.get('/health')

    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'DENY'


def test_debug_routes_hidden_outside_debug(client):
    assert client.get('/debug/routes').status_code == 404
