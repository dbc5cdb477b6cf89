import json

from module_anatomy.models import Anatomy


class TestAnatomyRoutes:
    """HTTP blueprint under /api/v1."""

    def _post(self, client, payload):
        return client.post('/api/v1/anatomies', data=json.dumps(payload), content_type='application/json')

    def test_create_and_show(self, client):
        response = self._post(client, {'name': 'Custom Part', 'label': 'Custom', 'children': [{'name': 'Sub 1'}]})
        assert response.status_code == 201
        body = response.get_json()
        assert body['flag'] == 'Anatomy'
        assert [c['name'] for c in body['children']] == ['Sub 1']

        response = client.get(f"/api/v1/anatomies/{body['id']}?flatten=true")
        assert response.status_code == 200
        assert 'children' not in response.get_json()

    def test_list_after_create(self, client):
        assert client.get('/api/v1/anatomies').get_json() == []
        self._post(client, {'name': 'Body'})
        names = [row['name'] for row in client.get('/api/v1/anatomies').get_json()]
        assert names == ['Body']

    def test_unbound_flag_lists_its_own_rows(self, client):
        response = self._post(client, {'name': 'Head', 'flag': 'HeadToToe'})
        assert response.status_code == 201
        assert response.get_json()['flag'] == 'HeadToToe'

        rows = client.get('/api/v1/anatomies?flag=HeadToToe').get_json()
        assert [row['name'] for row in rows] == ['Head']
        assert client.get('/api/v1/anatomies').get_json() == []

    def test_dental_filters(self, client):
        self._post(client, {
            'name': 'Teeth',
            'flag': 'DentalAnatomy',
            'children': [{'name': 'Tooth 11', 'element_id': 'Incisor_11'}, {'name': 'Tooth 41', 'element_id': 'Incisor_41'}],
        })
        rows = client.get('/api/v1/anatomies?flag=DentalAnatomy&position=lower').get_json()
        assert [(r['name'], r['position']) for r in rows] == [('Tooth 41', 'lower')]

    def test_validation_error(self, client):
        response = self._post(client, {'flag': 'DentalAnatomy', 'element_id': 'Molar_11'})
        assert response.status_code == 400
        body = response.get_json()
        assert body['error'] == 'validation_error'
        assert 'name' in body['messages']

    def test_non_object_body(self, client):
        response = client.post('/api/v1/anatomies', data='[]', content_type='application/json')
        assert response.status_code == 400

    def test_unknown_filter(self, client):
        response = client.get('/api/v1/anatomies?colour=red')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'query_error'

    def test_not_found(self, client):
        assert client.get('/api/v1/anatomies/4242').status_code == 404
        assert client.get('/api/v1/nowhere').get_json() == {'error': 'not_found'}

    def test_too_deep_payload_is_rejected(self, client):
        payload = {'name': 'Level 0'}
        node = payload
        for level in range(1, 200):
            child = {'name': f'Level {level}'}
            node['children'] = [child]
            node = child

        response = self._post(client, payload)
        assert response.status_code == 400
        body = response.get_json()
        assert body['error'] == 'validation_error'
        assert 'children' in body['messages']
        assert Anatomy.query.count() == 0

    def test_paginated_list(self, client):
        for name in ('Head', 'Chest', 'Abdomen'):
            self._post(client, {'name': name})

        first = client.get('/api/v1/anatomies?page=1&per_page=2').get_json()
        assert [row['name'] for row in first['data']] == ['Head', 'Chest']
        assert first['pagination'] == {'total': 3, 'page': 1, 'per_page': 2}

        second = client.get('/api/v1/anatomies?page=2&per_page=2').get_json()
        assert [row['name'] for row in second['data']] == ['Abdomen']
