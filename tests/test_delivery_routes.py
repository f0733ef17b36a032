from datetime import datetime, timezone
from decimal import Decimal

import pytest

from delivery_fees.utils import store

PREFIX = '/api/delivery-fees'
RESTAURANT_ID = '7b0c2f4e-2f1d-4a36-9a0e-3c5d1b8e6a10'


def configure_store(fake_store, **overrides):
    row = dict(
        type='per_km', base_fee=Decimal('5'), per_km_fee=Decimal('2'), min_fee=Decimal('3'),
        max_fee=Decimal('50'), free_delivery_threshold=Decimal('0'),
        store_lat='15.3694', store_lng='44.1910',
    )
    row.update(overrides)
    return fake_store.add(store.FEE_SETTINGS, **row)


# --- /calculate ---

def test_calculate_per_km(client, fake_store):
    configure_store(fake_store)

    response = client.post(f'{PREFIX}/calculate', json={
        'customerLat': 15.3794, 'customerLng': 44.2010, 'orderSubtotal': 20,
    })

    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert 1.4 <= body['distance'] <= 1.6
    assert body['fee'] == pytest.approx(5 + body['distance'] * 2, abs=0.011)
    assert body['isFreeDelivery'] is False
    assert body['estimatedTime'].endswith('دقيقة')
    assert set(body['feeBreakdown']) == {'baseFee', 'distanceFee', 'totalBeforeLimit'}


def test_calculate_free_delivery(client, fake_store):
    configure_store(fake_store, free_delivery_threshold=Decimal('50'))

    response = client.post(f'{PREFIX}/calculate', json={
        'customerLat': '15.3794', 'customerLng': '44.2010', 'orderSubtotal': '100',
    })

    body = response.get_json()
    assert response.status_code == 200
    assert body['fee'] == 0
    assert body['isFreeDelivery'] is True
    assert body['freeDeliveryReason']


def test_calculate_uses_restaurant_settings(client, fake_store):
    configure_store(fake_store)
    configure_store(fake_store, restaurant_id=RESTAURANT_ID, type='fixed', base_fee=Decimal('11'))

    response = client.post(f'{PREFIX}/calculate', json={
        'customerLat': 15.3794, 'customerLng': 44.2010, 'restaurantId': RESTAURANT_ID,
    })

    assert response.get_json()['fee'] == 11


def test_calculate_unconfigured_store_returns_base_fee(client, fake_store):
    response = client.post(f'{PREFIX}/calculate', json={'customerLat': 15.3794, 'customerLng': 44.2010})

    body = response.get_json()
    assert response.status_code == 200
    assert body['distance'] == 0
    assert body['fee'] == 5


def test_calculate_still_answers_when_database_is_down(client, fake_store):
    fake_store.fail = True

    response = client.post(f'{PREFIX}/calculate', json={'customerLat': 15.3794, 'customerLng': 44.2010})

    assert response.status_code == 200
    assert response.get_json()['fee'] == 5


@pytest.mark.parametrize('payload', [
    {},
    {'customerLat': 15.3},
    {'customerLat': '', 'customerLng': 44.2},
    {'customerLat': None, 'customerLng': 44.2},
])
def test_calculate_missing_coordinates(client, payload):
    response = client.post(f'{PREFIX}/calculate', json=payload)
    assert response.status_code == 400
    assert response.get_json()['success'] is False


@pytest.mark.parametrize('payload', [
    {'customerLat': 95, 'customerLng': 44.2},
    {'customerLat': 15.3, 'customerLng': -200},
    {'customerLat': 'north', 'customerLng': 44.2},
    {'customerLat': 15.3, 'customerLng': 44.2, 'orderSubtotal': -5},
    {'customerLat': 15.3, 'customerLng': 44.2, 'orderSubtotal': 'lots'},
    {'customerLat': 15.3, 'customerLng': 44.2, 'restaurantId': 'r1'},
])
def test_calculate_invalid_values(client, payload):
    response = client.post(f'{PREFIX}/calculate', json=payload)
    assert response.status_code == 400


# --- /distance ---

def test_distance(client):
    response = client.post(f'{PREFIX}/distance', json={
        'fromLat': 15.3694, 'fromLng': 44.1910, 'toLat': 15.3794, 'toLng': 44.2010,
    })

    body = response.get_json()
    assert response.status_code == 200
    assert body['unit'] == 'km'
    assert 1.4 <= body['distance'] <= 1.6
    assert body['estimatedTime'] == '19-25 دقيقة'


def test_distance_missing_point(client):
    response = client.post(f'{PREFIX}/distance', json={'fromLat': 15.3, 'fromLng': 44.1, 'toLat': 15.4})
    assert response.status_code == 400


def test_distance_out_of_range(client):
    response = client.post(f'{PREFIX}/distance', json={
        'fromLat': 15.3, 'fromLng': 44.1, 'toLat': 120, 'toLng': 44.2,
    })
    body = response.get_json()
    assert response.status_code == 400
    assert body['field'] == 'toLat'


# --- /settings ---

def test_get_settings_defaults(client):
    response = client.get(f'{PREFIX}/settings')

    body = response.get_json()
    assert response.status_code == 200
    assert body['isDefault'] is True
    assert body['type'] == 'per_km'
    assert body['baseFee'] == 5
    assert body['maxFee'] == 50


def test_get_settings_stored(client, fake_store):
    configure_store(fake_store, restaurant_id=RESTAURANT_ID, base_fee=Decimal('8.50'))

    body = client.get(f'{PREFIX}/settings?restaurantId={RESTAURANT_ID}').get_json()

    assert body['baseFee'] == 8.5
    assert body['restaurantId'] == RESTAURANT_ID
    assert 'isDefault' not in body


def test_save_settings_creates_then_updates(client, fake_store):
    payload = {'type': 'per_km', 'baseFee': '6', 'perKmFee': '1.5', 'minFee': '3', 'maxFee': '40'}

    created = client.post(f'{PREFIX}/settings', json=payload)
    assert created.status_code == 201
    assert created.get_json()['settings']['baseFee'] == 6

    updated = client.post(f'{PREFIX}/settings', json={**payload, 'baseFee': '7'})
    assert updated.status_code == 200
    assert updated.get_json()['settings']['baseFee'] == 7
    assert len(fake_store.tables[store.FEE_SETTINGS]) == 1


def test_save_settings_blank_fields_default(client, fake_store):
    response = client.post(f'{PREFIX}/settings', json={'type': 'fixed', 'baseFee': ''})

    settings = response.get_json()['settings']
    assert response.status_code == 201
    assert settings['baseFee'] == 0
    assert settings['maxFee'] == 1000


def test_save_settings_rejects_max_below_min(client, fake_store):
    response = client.post(f'{PREFIX}/settings', json={'type': 'per_km', 'minFee': '10', 'maxFee': '5'})

    body = response.get_json()
    assert response.status_code == 400
    assert body['field'] == 'maxFee'
    assert fake_store.tables[store.FEE_SETTINGS] == []


@pytest.mark.parametrize('payload, field', [
    ({'baseFee': '5'}, 'type'),
    ({'type': 'surge'}, 'type'),
    ({'type': 'per_km', 'baseFee': 'abc'}, 'baseFee'),
    ({'type': 'per_km', 'perKmFee': '-1'}, 'perKmFee'),
    ({'type': 'per_km', 'storeLat': '100', 'storeLng': '44'}, 'storeLat'),
    ({'type': 'per_km', 'restaurantId': 'r1'}, 'restaurantId'),
])
def test_save_settings_rejects_invalid_values(client, payload, field):
    response = client.post(f'{PREFIX}/settings', json=payload)
    assert response.status_code == 400
    assert response.get_json()['field'] == field


def test_get_settings_rejects_malformed_restaurant_id(client, fake_store):
    response = client.get(f'{PREFIX}/settings?restaurantId=r1')

    assert response.status_code == 400
    assert response.get_json()['field'] == 'restaurantId'


def test_settings_database_down(client, fake_store):
    fake_store.fail = True
    assert client.get(f'{PREFIX}/settings').status_code == 500
    assert client.post(f'{PREFIX}/settings', json={'type': 'fixed'}).status_code == 500


# --- /zones ---

def test_zone_crud(client, fake_store):
    created = client.post(f'{PREFIX}/zones', json={
        'name': 'Center', 'maxDistance': '3', 'deliveryFee': '5', 'estimatedTime': '20 min',
    })
    assert created.status_code == 201
    zone = created.get_json()['zone']
    assert zone['minDistance'] == 0

    listed = client.get(f'{PREFIX}/zones').get_json()
    assert [z['name'] for z in listed] == ['Center']

    updated = client.put(f"{PREFIX}/zones/{zone['id']}", json={'deliveryFee': '6'})
    assert updated.status_code == 200
    assert updated.get_json()['zone']['deliveryFee'] == 6

    deleted = client.delete(f"{PREFIX}/zones/{zone['id']}")
    assert deleted.status_code == 200
    assert client.delete(f"{PREFIX}/zones/{zone['id']}").status_code == 404


def test_adjacent_zones_do_not_overlap(client):
    assert client.post(f'{PREFIX}/zones', json={'name': 'A', 'maxDistance': 3, 'deliveryFee': 5}).status_code == 201
    assert client.post(f'{PREFIX}/zones', json={
        'name': 'B', 'minDistance': 3, 'maxDistance': 10, 'deliveryFee': 10,
    }).status_code == 201


def test_overlapping_zone_rejected(client):
    first = client.post(f'{PREFIX}/zones', json={'name': 'A', 'maxDistance': 3, 'deliveryFee': 5})
    response = client.post(f'{PREFIX}/zones', json={
        'name': 'B', 'minDistance': 2, 'maxDistance': 6, 'deliveryFee': 8,
    })
    assert response.status_code == 409
    assert response.get_json()['conflictingZoneId'] == first.get_json()['zone']['id']


def test_zone_update_can_grow_into_free_space_but_not_overlap(client):
    a = client.post(f'{PREFIX}/zones', json={'name': 'A', 'maxDistance': 3, 'deliveryFee': 5}).get_json()['zone']
    client.post(f'{PREFIX}/zones', json={'name': 'B', 'minDistance': 5, 'maxDistance': 8, 'deliveryFee': 9})

    assert client.put(f"{PREFIX}/zones/{a['id']}", json={'maxDistance': 5}).status_code == 200
    assert client.put(f"{PREFIX}/zones/{a['id']}", json={'maxDistance': 6}).status_code == 409


@pytest.mark.parametrize('payload', [
    {'maxDistance': 3, 'deliveryFee': 5},
    {'name': 'A', 'deliveryFee': 5},
    {'name': 'A', 'maxDistance': 3},
    {'name': 'A', 'minDistance': 5, 'maxDistance': 3, 'deliveryFee': 5},
    {'name': 'A', 'maxDistance': 'far', 'deliveryFee': 5},
])
def test_zone_validation(client, payload):
    assert client.post(f'{PREFIX}/zones', json=payload).status_code == 400


def test_update_missing_zone(client):
    assert client.put(f'{PREFIX}/zones/nope', json={'deliveryFee': 3}).status_code == 404


# --- /geo-zones, /rules, /discounts ---

SQUARE = [{'lat': 15.0, 'lng': 44.0}, {'lat': 15.0, 'lng': 45.0},
          {'lat': 16.0, 'lng': 45.0}, {'lat': 16.0, 'lng': 44.0}]


def test_geo_zone_crud_and_lookup(client):
    created = client.post(f'{PREFIX}/geo-zones', json={'name': 'Sanaa', 'coordinates': SQUARE})
    assert created.status_code == 201
    zone = created.get_json()

    inside = client.get(f'{PREFIX}/geo-zones/lookup?lat=15.37&lng=44.19').get_json()
    outside = client.get(f'{PREFIX}/geo-zones/lookup?lat=12.78&lng=45.01').get_json()
    assert [z['name'] for z in inside] == ['Sanaa']
    assert outside == []

    patched = client.patch(f"{PREFIX}/geo-zones/{zone['id']}", json={'description': 'Capital'})
    assert patched.status_code == 200
    assert patched.get_json()['description'] == 'Capital'

    assert client.delete(f"{PREFIX}/geo-zones/{zone['id']}").status_code == 204
    assert client.delete(f"{PREFIX}/geo-zones/{zone['id']}").status_code == 404


@pytest.mark.parametrize('payload', [
    {'name': 'x', 'coordinates': SQUARE[:2]},
    {'name': 'x', 'coordinates': 'not json'},
    {'name': 'x', 'coordinates': [{'lat': 95, 'lng': 0}] + SQUARE},
    {'coordinates': SQUARE},
])
def test_geo_zone_validation(client, payload):
    assert client.post(f'{PREFIX}/geo-zones', json=payload).status_code == 400


def test_geo_zone_lookup_requires_coordinates(client):
    assert client.get(f'{PREFIX}/geo-zones/lookup?lat=15').status_code == 400


def test_rule_crud(client):
    created = client.post(f'{PREFIX}/rules', json={
        'name': 'Long range', 'ruleType': 'distance', 'minDistance': '10', 'maxDistance': '20',
        'fee': '25', 'priority': '3',
    })
    assert created.status_code == 201
    rule = created.get_json()
    assert rule['priority'] == 3

    patched = client.patch(f"{PREFIX}/rules/{rule['id']}", json={'fee': '30'})
    assert patched.status_code == 200
    assert patched.get_json()['fee'] == 30

    assert len(client.get(f'{PREFIX}/rules').get_json()) == 1
    assert client.delete(f"{PREFIX}/rules/{rule['id']}").status_code == 204


@pytest.mark.parametrize('payload', [
    {'name': 'r', 'ruleType': 'weather', 'fee': 5},
    {'name': 'r', 'ruleType': 'zone', 'fee': 5},
    {'name': 'r', 'ruleType': 'distance'},
    {'name': 'r', 'ruleType': 'distance', 'fee': 5, 'minDistance': 9, 'maxDistance': 2},
    {'name': 'r', 'ruleType': 'order_value', 'fee': 5, 'priority': 'high'},
])
def test_rule_validation(client, payload):
    assert client.post(f'{PREFIX}/rules', json=payload).status_code == 400


def test_rule_rejects_malformed_geo_zone_id(client):
    response = client.post(f'{PREFIX}/rules', json={
        'name': 'r', 'ruleType': 'zone', 'fee': 5, 'geoZoneId': 'downtown',
    })
    assert response.status_code == 400


def test_discount_crud(client):
    created = client.post(f'{PREFIX}/discounts', json={
        'name': 'Ramadan', 'discountType': 'percentage', 'discountValue': '50',
        'validFrom': '2026-03-01', 'validUntil': '2026-03-30',
    })
    assert created.status_code == 201
    discount = created.get_json()
    assert discount['validFrom'].startswith('2026-03-01')

    assert client.patch(f"{PREFIX}/discounts/{discount['id']}", json={'discountValue': '150'}).status_code == 400
    assert client.patch(f"{PREFIX}/discounts/{discount['id']}", json={'isActive': False}).status_code == 200
    assert client.delete(f"{PREFIX}/discounts/{discount['id']}").status_code == 204
    assert client.patch(f"{PREFIX}/discounts/{discount['id']}", json={'name': 'x'}).status_code == 404


@pytest.mark.parametrize('payload', [
    {'name': 'd', 'discountType': 'bogo', 'discountValue': 5},
    {'name': 'd', 'discountType': 'fixed'},
    {'name': 'd', 'discountType': 'fixed', 'discountValue': -1},
    {'name': 'd', 'discountType': 'fixed', 'discountValue': 5,
     'validFrom': '2026-05-01', 'validUntil': '2026-04-01'},
    {'name': 'd', 'discountType': 'fixed', 'discountValue': 5, 'validFrom': 'soon'},
])
def test_discount_validation(client, payload):
    assert client.post(f'{PREFIX}/discounts', json=payload).status_code == 400


def test_discount_mixes_utc_and_date_only_bounds(client):
    response = client.post(f'{PREFIX}/discounts', json={
        'name': 'Launch', 'discountType': 'fixed', 'discountValue': '5',
        'validFrom': '2025-01-01T00:00:00Z', 'validUntil': '2025-02-01',
    })

    assert response.status_code == 201
    assert response.get_json()['validFrom'] == '2025-01-01T00:00:00'


def test_discount_patch_compares_against_stored_bounds(client, fake_store):
    naive = fake_store.add(store.DISCOUNTS, name='Naive', discount_type='fixed',
                           discount_value=Decimal('5'), valid_from=datetime(2025, 1, 1))
    aware = fake_store.add(store.DISCOUNTS, name='Aware', discount_type='fixed',
                           discount_value=Decimal('5'),
                           valid_from=datetime(2025, 1, 1, tzinfo=timezone.utc))

    ok = client.patch(f"{PREFIX}/discounts/{naive['id']}", json={'validUntil': '2025-03-01T00:00:00Z'})
    assert ok.status_code == 200
    assert ok.get_json()['validUntil'] == '2025-03-01T00:00:00'

    # 02:00 at +05:00 is still 2024-12-31 in UTC
    early = client.patch(f"{PREFIX}/discounts/{naive['id']}",
                         json={'validUntil': '2025-01-01T02:00:00+05:00'})
    assert early.status_code == 400

    assert client.patch(f"{PREFIX}/discounts/{aware['id']}",
                        json={'validUntil': '2025-02-01'}).status_code == 200


@pytest.mark.parametrize('path', [
    'calculate', 'distance', 'settings', 'zones', 'geo-zones', 'rules', 'discounts',
])
def test_post_body_must_be_json_object(client, fake_store, path):
    response = client.post(f'{PREFIX}/{path}', json=[15.3, 44.2])

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing data'
    assert all(rows == [] for rows in fake_store.tables.values())


def test_patch_body_must_be_json_object(client, fake_store):
    discount = fake_store.add(store.DISCOUNTS, name='d', discount_type='fixed', discount_value=Decimal('5'))

    response = client.patch(f"{PREFIX}/discounts/{discount['id']}", json='free')

    assert response.status_code == 400
    assert fake_store.tables[store.DISCOUNTS][0]['name'] == 'd'


@pytest.mark.parametrize('method, path', [
    ('put', 'zones/42'),
    ('delete', 'zones/42'),
    ('patch', 'geo-zones/not-a-uuid'),
    ('delete', 'geo-zones/not-a-uuid'),
    ('patch', 'rules/1'),
    ('delete', 'rules/1'),
    ('patch', 'discounts/abc'),
    ('delete', 'discounts/abc'),
])
def test_malformed_path_id_is_not_found(client, method, path):
    response = getattr(client, method)(f'{PREFIX}/{path}', json={'name': 'x'})

    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_crud_database_down(client, fake_store):
    fake_store.fail = True
    for path in ('zones', 'geo-zones', 'rules', 'discounts'):
        assert client.get(f'{PREFIX}/{path}').status_code == 500


# --- app ---

def test_health(client):
    assert client.get('/health').get_json()['status'] == 'ok'


def test_unknown_endpoint_is_json_404(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert response.get_json()['success'] is False
