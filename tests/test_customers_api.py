LAN = {'fullName': 'Nguyễn Thị Lan', 'email': 'lan@example.com', 'phoneNumber': '0901234567',
       'cccdNumber': '001199000001', 'password': 'secret1'}


def register(client, **overrides):
    return client.post('/api/customers/register', json=dict(LAN, **overrides))


def test_register_and_login(client):
    resp = register(client, id='CUST-1')
    assert resp.status_code == 201
    customer = resp.get_json()['customer']
    assert customer['id'] == 'CUST-1'
    assert 'password' not in customer and 'passwordHash' not in customer

    for identifier in ('lan@example.com', '0901234567'):
        resp = client.post('/api/customers/login', json={'identifier': identifier, 'password': 'secret1'})
        assert resp.get_json()['customer']['id'] == 'CUST-1'

    resp = client.post('/api/customers/login', json={'identifier': 'lan@example.com', 'password': 'nope'})
    assert resp.status_code == 401
    assert resp.get_json()['message'] == 'Tài khoản hoặc mật khẩu không đúng.'


def test_registration_is_unique(client, admin):
    register(client)
    cases = [
        ({'phoneNumber': '0999999999', 'cccdNumber': ''}, 'Email này đã được đăng ký.'),
        ({'email': 'b@example.com', 'cccdNumber': ''}, 'Số điện thoại này đã được đăng ký.'),
        ({'email': 'b@example.com', 'phoneNumber': '0999999999'}, 'Số CCCD này đã được đăng ký.'),
    ]
    for overrides, message in cases:
        resp = register(client, **overrides)
        assert resp.status_code == 409
        assert resp.get_json()['message'] == message
    assert len(admin.get('/api/customers').get_json()) == 1


def test_registration_needs_the_basics(client):
    resp = register(client, password='')
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Vui lòng điền đầy đủ thông tin.'


def test_profile_update(client):
    lan = register(client).get_json()['customer']
    register(client, email='b@example.com', phoneNumber='0988888888', cccdNumber='')

    resp = client.post(f'/api/customers/{lan["id"]}', json={'email': 'b@example.com'})
    assert resp.status_code == 409

    resp = client.put(f'/api/customers/{lan["id"]}', json={'email': 'lan@example.com', 'address': 'Hà Nội',
                                                          'password': 'newpass'})
    assert resp.get_json()['customer']['address'] == 'Hà Nội'
    resp = client.post('/api/customers/login', json={'identifier': '0901234567', 'password': 'newpass'})
    assert resp.status_code == 200
    assert client.get(f'/api/customers/{lan["id"]}').get_json()['address'] == 'Hà Nội'
    assert client.get('/api/customers/CUST-404').status_code == 404


def test_customer_admin_routes(client, admin):
    lan = register(client).get_json()['customer']
    assert client.get('/api/customers').status_code == 401
    assert client.delete(f'/api/customers/{lan["id"]}').status_code == 401

    resp = admin.post('/api/customers', json={'id': 'CUST-OLD', 'fullName': 'Trần Minh', 'phoneNumber': '0977'})
    assert resp.get_json()['customer']['fullName'] == 'Trần Minh'
    assert admin.delete(f'/api/customers/{lan["id"]}').status_code == 200
    assert [c['id'] for c in admin.get('/api/customers').get_json()] == ['CUST-OLD']
