"""
Tests for the HTTP API through the Flask test client
"""
import unittest

from app import create_app
from services.wallet import serial_for
from support import INSIDE_CAPITAL, OUTSIDE_EVERYTHING, PlatformTestCase

API = "/api/v1"


class TestApi(PlatformTestCase):
    """Test cases for the customer API"""

    def setUp(self):
        super().setUp()
        self.app = create_app(self.settings, self.clock)
        self.app.config['TESTING'] = True
        self.client = self.app.test_client()
        self.platform = self.app.extensions["ordering_platform"]

        self.customer_id = self.make_customer()
        self.restaurant_id = self.make_restaurant()
        self.product_id = self.make_product()
        self.headers = {"Authorization": "Bearer token-ana"}

    def add_to_cart(self, quantity=2):
        return self.client.post(f"{API}/cart/items", headers=self.headers,
                                json={"product_id": self.product_id, "quantity": quantity})

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['status'], 'ok')

    def test_authentication_required(self):
        for headers in ({}, {"Authorization": "Bearer nope"}, {"Authorization": "token-ana"}):
            response = self.client.get(f"{API}/cart", headers=headers)
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.get_json()["message"], "No autenticado.")

    def test_cart_flow(self):
        response = self.add_to_cart()
        self.assertEqual(response.status_code, 201)
        data = response.get_json()["data"]
        self.assertEqual(data["item"]["quantity"], 2)
        self.assertEqual(data["cart"]["summary"]["total"], "70.00")

        item_id = data["item"]["id"]
        response = self.client.put(f"{API}/cart/items/{item_id}", headers=self.headers, json={"quantity": 1})
        self.assertEqual(response.get_json()["data"]["cart"]["summary"]["subtotal"], "35.00")

        response = self.client.put(f"{API}/cart/restaurant", headers=self.headers,
                                   json={"restaurant_id": self.restaurant_id})
        self.assertEqual(response.get_json()["data"]["restaurant"]["id"], self.restaurant_id)

        response = self.client.post(f"{API}/cart/validate", headers=self.headers)
        self.assertEqual(response.get_json()["data"], {"is_valid": True, "errors": []})

        response = self.client.delete(f"{API}/cart/items/{item_id}", headers=self.headers)
        self.assertEqual(response.get_json()["data"]["items"], [])

    def test_validation_errors(self):
        response = self.add_to_cart(quantity=11)
        self.assertEqual(response.status_code, 422)
        self.assertIn("quantity", response.get_json()["errors"])

        response = self.client.post(f"{API}/cart/items", headers=self.headers,
                                    json={"product_id": self.product_id, "combo_id": 1})
        self.assertEqual(response.status_code, 422)
        self.assertIn("errors", response.get_json())

        response = self.client.post(f"{API}/nits", headers=self.headers, json={"nit": "no válido"})
        self.assertEqual(response.status_code, 422)
        self.assertIn("nit", response.get_json()["errors"])

    def test_unknown_restaurant(self):
        response = self.client.put(f"{API}/cart/restaurant", headers=self.headers, json={"restaurant_id": 999})
        self.assertEqual(response.status_code, 404)

    def test_delivery_address_outside_zone(self):
        address_id = self.make_address(self.customer_id, location=OUTSIDE_EVERYTHING)
        response = self.client.put(f"{API}/cart/delivery-address", headers=self.headers,
                                   json={"delivery_address_id": address_id})

        self.assertEqual(response.status_code, 422)
        body = response.get_json()
        self.assertEqual(body["error_code"], "ADDRESS_OUTSIDE_DELIVERY_ZONE")
        self.assertEqual(body["data"]["nearest_pickup_locations"][0]["id"], self.restaurant_id)

    def test_delivery_address_assigns_restaurant(self):
        address_id = self.make_address(self.customer_id)
        response = self.client.put(f"{API}/cart/delivery-address", headers=self.headers,
                                   json={"delivery_address_id": address_id})

        data = response.get_json()["data"]
        self.assertEqual(data["assigned_restaurant"]["id"], self.restaurant_id)
        self.assertEqual(data["cart"]["service_type"], "delivery")

    def test_validate_location(self):
        response = self.client.post(f"{API}/addresses/validate-location", headers=self.headers,
                                    json={"latitude": INSIDE_CAPITAL[0], "longitude": INSIDE_CAPITAL[1]})
        self.assertEqual(response.get_json()["data"]["is_valid"], True)

        response = self.client.post(f"{API}/addresses/validate-location", headers=self.headers,
                                    json={"latitude": 120, "longitude": 0})
        self.assertEqual(response.status_code, 422)

    def test_order_flow(self):
        self.add_to_cart()
        response = self.client.post(f"{API}/orders", headers=self.headers,
                                    json={"service_type": "pickup", "restaurant_id": self.restaurant_id})
        self.assertEqual(response.status_code, 201)
        order = response.get_json()["data"]
        self.assertEqual(order["order_number"], f"ORD-20260304-{self.restaurant_id}-0001")
        self.assertEqual(order["total"], "70.00")

        response = self.client.get(f"{API}/orders/{order['id']}/track", headers=self.headers)
        self.assertEqual(response.get_json()["data"]["status"], "pending")

        response = self.client.get(f"{API}/orders", headers=self.headers)
        self.assertEqual(response.get_json()["meta"]["total"], 1)

        self.make_customer(name="Luis", email="luis@example.com", api_token="token-luis")
        response = self.client.get(f"{API}/orders/{order['id']}", headers={"Authorization": "Bearer token-luis"})
        self.assertEqual(response.status_code, 403)

        response = self.client.post(f"{API}/orders/{order['id']}/cancel", headers=self.headers,
                                    json={"reason": "Cambié de opinión"})
        self.assertEqual(response.get_json()["data"]["status"], "cancelled")

        response = self.client.post(f"{API}/orders/{order['id']}/cancel", headers=self.headers,
                                    json={"reason": "Otra vez"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.get_json()["error_code"], "ORDER_NOT_CANCELLABLE")

    def test_pagination_bounds(self):
        self.add_to_cart()
        self.client.post(f"{API}/orders", headers=self.headers,
                         json={"service_type": "pickup", "restaurant_id": self.restaurant_id})

        response = self.client.get(f"{API}/orders?per_page=0&page=-3", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["meta"]["per_page"], 1)
        self.assertEqual(response.get_json()["meta"]["current_page"], 1)
        self.assertEqual(len(response.get_json()["data"]), 1)

        response = self.client.get(f"{API}/orders?per_page=500", headers=self.headers)
        self.assertEqual(response.get_json()["meta"]["per_page"], 50)

        self.platform.points_service.add_adjustment(self.customer_id, 10, "Bono", "bonus")
        response = self.client.get(f"{API}/points/history?per_page=-5&page=0", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["meta"], {"current_page": 1, "per_page": 1, "total": 1})

    def test_empty_cart_order(self):
        response = self.client.post(f"{API}/orders", headers=self.headers,
                                    json={"service_type": "pickup", "restaurant_id": self.restaurant_id})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.get_json()["error_code"], "CART_INVALID")

    def test_points_balance_and_redeem(self):
        self.platform.points_service.add_adjustment(self.customer_id, 40, "Bono", "bonus")
        response = self.client.get(f"{API}/points/balance", headers=self.headers)
        self.assertEqual(response.get_json()["data"]["points"], 40)

        self.add_to_cart()
        order = self.client.post(f"{API}/orders", headers=self.headers,
                                 json={"service_type": "pickup",
                                       "restaurant_id": self.restaurant_id}).get_json()["data"]
        response = self.client.post(f"{API}/points/redeem", headers=self.headers,
                                    json={"order_id": order["id"], "points_to_redeem": 50})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.get_json()["error_code"], "INSUFFICIENT_POINTS")

        response = self.client.post(f"{API}/points/redeem", headers=self.headers,
                                    json={"order_id": order["id"], "points_to_redeem": 15})
        self.assertEqual(response.get_json()["data"]["new_balance"], 25)

    def test_apple_wallet_download_link(self):
        response = self.client.get(f"{API}/wallet/apple", headers=self.headers)
        url = response.get_json()["data"]["url"]
        self.assertIn(f"/wallet/apple/download/{self.customer_id}?token=", url)

        response = self.client.get(f"{API}/wallet/apple/download/{self.customer_id}?token=forged")
        self.assertEqual(response.status_code, 403)

        # Certificates are not configured in tests
        response = self.client.get(url)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json()["message"], "Error generando el pase de Apple Wallet.")

    def test_wallet_requires_loyalty_card(self):
        self.make_customer(name="Luis", email="luis@example.com", api_token="token-luis", loyalty_card=None)
        response = self.client.get(f"{API}/wallet/google", headers={"Authorization": "Bearer token-luis"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.get_json()["error_code"], "LOYALTY_CARD_MISSING")

    def test_apple_web_service_registration(self):
        serial = serial_for(self.customer_id)
        path = f"/v1/devices/device-1/registrations/pass.gt.loyalty.card/{serial}"
        auth = {"Authorization": f"ApplePass {self.platform.apple_wallet.auth_token(self.customer_id)}"}

        self.assertEqual(self.client.post(path, json={"pushToken": "push-a"}).status_code, 401)
        self.assertEqual(self.client.post(path, headers=auth, json={}).status_code, 400)
        self.assertEqual(self.client.post(path, headers=auth, json={"pushToken": "push-a"}).status_code, 201)
        self.assertEqual(self.client.post(path, headers=auth, json={"pushToken": "push-a"}).status_code, 200)

        response = self.client.get("/v1/devices/device-1/registrations/pass.gt.loyalty.card")
        self.assertEqual(response.get_json()["serialNumbers"], [serial])
        response = self.client.get("/v1/devices/device-2/registrations/pass.gt.loyalty.card")
        self.assertEqual(response.status_code, 204)

        self.assertEqual(self.client.delete(path, headers=auth).status_code, 200)
        self.assertEqual(self.client.post("/v1/log", json={"logs": ["hola"]}).status_code, 200)


if __name__ == '__main__':
    unittest.main()
