#!/usr/bin/env python3
"""
Integration Test Suite for EcoStore

Usage:
    1. Start the API with an administrator:
       ECOSTORE_ADMIN_PASSWORD=Admin12345 python start_storefront.py --admin-email admin@ecostore.test
    2. Install dependencies: pip install requests
    3. Run the script: python tests/integration_test.py

This script tests the full flow:
    - Authentication (Register/Login)
    - Product Management
    - Shopping Cart and Cart Impact
    - Checkout and Stock
    - Status Updates and Green Points
    - Cancellation
    - Security/Negative Tests

Output:
    - Console logs with pass/fail status
    - integration_test_results.json report
"""
import requests
import json
import os
import time
import sys
from datetime import datetime
from typing import Dict, Any

# Configuration
BASE_URL = os.getenv("ECOSTORE_URL", "http://localhost:8000")
ADMIN_EMAIL = os.getenv("ECOSTORE_ADMIN_EMAIL", "admin@ecostore.test")
ADMIN_PASSWORD = os.getenv("ECOSTORE_ADMIN_PASSWORD", "Admin12345")
RESULTS_FILE = "integration_test_results.json"

# Colors
class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    GREEN = '\033[92m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'

class TestRunner:
    def __init__(self):
        self.results = []
        self.session = requests.Session()
        self.store: Dict[str, Any] = {}
        self.start_time = time.time()

    def log(self, message: str, color: str = Colors.ENDC):
        print(f"{color}{message}{Colors.ENDC}")

    def save_result(self, name: str, status: str, duration: float, error: str = None):
        self.results.append({
            "test_name": name,
            "status": status,
            "duration": duration,
            "error": error,
            "timestamp": datetime.utcnow().isoformat()
        })
        color = Colors.GREEN if status == "PASS" else Colors.FAIL
        self.log(f"[{status}] {name} ({duration:.4f}s)", color)
        if error:
            self.log(f"  Error: {error}", Colors.FAIL)

    def run_test(self, name: str, func, *args, **kwargs):
        start = time.time()
        try:
            func(*args, **kwargs)
            duration = time.time() - start
            self.save_result(name, "PASS", duration)
        except AssertionError as e:
            duration = time.time() - start
            self.save_result(name, "FAIL", duration, str(e))
        except Exception as e:
            duration = time.time() - start
            self.save_result(name, "ERROR", duration, str(e))

    def assert_status(self, response, expected: int):
        if response.status_code != expected:
            raise AssertionError(f"Expected status {expected}, got {response.status_code}. Body: {response.text}")

    def headers(self, who: str) -> dict:
        return {"Authorization": f"Bearer {self.store[f'{who}_token']}"}

    def save_report(self):
        with open(RESULTS_FILE, "w") as f:
            json.dump({
                "summary": {
                    "total": len(self.results),
                    "passed": len([r for r in self.results if r["status"] == "PASS"]),
                    "failed": len([r for r in self.results if r["status"] != "PASS"]),
                    "total_duration": time.time() - self.start_time
                },
                "results": self.results
            }, f, indent=2)
        self.log(f"\nTest results saved to {RESULTS_FILE}", Colors.BLUE)

# --- Test Functions ---

def test_health_check(runner: TestRunner):
    resp = runner.session.get(f"{BASE_URL}/health")
    runner.assert_status(resp, 200)
    if resp.json()["status"] != "healthy":
        raise AssertionError("System is not healthy")

# Phase 1: Authentication

def register_user(runner: TestRunner):
    user_data = {
        "email": f"shopper_{int(time.time())}@test.com",
        "password": "Password123",
        "name": "Test Shopper",
        "role": "admin",
    }
    resp = runner.session.post(f"{BASE_URL}/auth/register", json=user_data)
    runner.assert_status(resp, 201)
    if resp.json()["data"]["user"]["role"] != "user":
        raise AssertionError("Signup must never grant the admin role")
    runner.store["user_email"] = user_data["email"]
    runner.store["user_password"] = user_data["password"]

def login_users(runner: TestRunner):
    resp = runner.session.post(f"{BASE_URL}/auth/login", json={
        "email": ADMIN_EMAIL,
        "password": ADMIN_PASSWORD
    })
    runner.assert_status(resp, 200)
    runner.store["admin_token"] = resp.json()["data"]["token"]

    resp = runner.session.post(f"{BASE_URL}/auth/login", json={
        "email": runner.store["user_email"],
        "password": runner.store["user_password"]
    })
    runner.assert_status(resp, 200)
    runner.store["user_token"] = resp.json()["data"]["token"]

# Phase 2: Products

def create_product(runner: TestRunner):
    product_data = {
        "name": "Integration Bamboo Brush",
        "description": "Compostable toothbrush",
        "price": "4.50",
        "category": "bathroom",
        "stock": 3,
        "isEcoFriendly": True,
        "carbonFootprint": 0.5,
        "plasticContent": 0.0
    }
    resp = runner.session.post(f"{BASE_URL}/products", json=product_data, headers=runner.headers("admin"))
    runner.assert_status(resp, 201)
    runner.store["product_id"] = resp.json()["data"]["id"]

def list_products(runner: TestRunner):
    resp = runner.session.get(f"{BASE_URL}/products", params={"search": "Integration Bamboo"})
    runner.assert_status(resp, 200)
    products = resp.json()["data"]["products"]
    if not any(p["id"] == runner.store["product_id"] for p in products):
        raise AssertionError("Created product not found in list")

# Phase 3: Cart

def add_to_cart(runner: TestRunner):
    data = {"productId": runner.store["product_id"], "quantity": 2}
    resp = runner.session.post(f"{BASE_URL}/cart", json=data, headers=runner.headers("user"))
    runner.assert_status(resp, 201)

def view_cart_impact(runner: TestRunner):
    resp = runner.session.get(f"{BASE_URL}/sustainability/cart-impact", headers=runner.headers("user"))
    runner.assert_status(resp, 200)
    impact = resp.json()["data"]
    if impact["ecoFriendlyItems"] != 1 or impact["potentialGreenPoints"] != 10:
        raise AssertionError(f"Unexpected cart impact: {impact}")

# Phase 4: Order

def create_order(runner: TestRunner):
    resp = runner.session.post(f"{BASE_URL}/orders", headers=runner.headers("user"))
    runner.assert_status(resp, 201)
    order = resp.json()["data"]
    runner.store["order_id"] = order["id"]
    if order["status"] != "pending":
        raise AssertionError("Order status should be pending")

def verify_stock_and_cart(runner: TestRunner):
    resp = runner.session.get(f"{BASE_URL}/products/{runner.store['product_id']}")
    if resp.json()["data"]["stock"] != 1:
        raise AssertionError("Stock was not decremented")
    resp = runner.session.get(f"{BASE_URL}/cart", headers=runner.headers("user"))
    if resp.json()["data"]["items"]:
        raise AssertionError("Cart not cleared after order")

def oversell_rejected(runner: TestRunner):
    data = {"productId": runner.store["product_id"], "quantity": 2}
    resp = runner.session.post(f"{BASE_URL}/cart", json=data, headers=runner.headers("user"))
    runner.assert_status(resp, 400)

# Phase 5: Status and points

def owner_cannot_deliver(runner: TestRunner):
    oid = runner.store["order_id"]
    resp = runner.session.put(f"{BASE_URL}/orders/{oid}", json={"status": "delivered"}, headers=runner.headers("user"))
    runner.assert_status(resp, 403)

def deliver_and_credit(runner: TestRunner):
    oid = runner.store["order_id"]
    resp = runner.session.put(f"{BASE_URL}/orders/{oid}", json={"status": "delivered"}, headers=runner.headers("admin"))
    runner.assert_status(resp, 200)
    resp = runner.session.get(f"{BASE_URL}/sustainability/dashboard", headers=runner.headers("user"))
    dashboard = resp.json()["data"]
    if dashboard["greenPoints"] != 10:
        raise AssertionError(f"Points not credited: {dashboard}")

def delivered_cannot_cancel(runner: TestRunner):
    oid = runner.store["order_id"]
    resp = runner.session.delete(f"{BASE_URL}/orders/{oid}", headers=runner.headers("user"))
    runner.assert_status(resp, 400)

# Phase 6: Cancellation

def cancel_restores_stock(runner: TestRunner):
    pid = runner.store["product_id"]
    runner.session.post(f"{BASE_URL}/cart", json={"productId": pid, "quantity": 1}, headers=runner.headers("user"))
    resp = runner.session.post(f"{BASE_URL}/orders", headers=runner.headers("user"))
    runner.assert_status(resp, 201)
    oid = resp.json()["data"]["id"]

    resp = runner.session.delete(f"{BASE_URL}/orders/{oid}", headers=runner.headers("user"))
    runner.assert_status(resp, 200)
    stock = runner.session.get(f"{BASE_URL}/products/{pid}").json()["data"]["stock"]
    if stock != 1:
        raise AssertionError(f"Stock not restored, got {stock}")

# Phase 7: Negative Tests

def negative_tests(runner: TestRunner):
    resp = runner.session.get(f"{BASE_URL}/cart", headers={"Authorization": "Bearer invalid_token"})
    if resp.status_code != 401:
        raise AssertionError(f"Expected 401 for invalid token, got {resp.status_code}")

    bad_product = {"name": "Bad", "price": -10, "category": "bad"}
    resp = runner.session.post(f"{BASE_URL}/products", json=bad_product, headers=runner.headers("admin"))
    if resp.status_code != 400:
        raise AssertionError(f"Expected 400 for negative price, got {resp.status_code}")
    if resp.json().get("success") is not False:
        raise AssertionError("Error envelope missing")


def main():
    runner = TestRunner()
    runner.log("Starting Integration Tests...\n", Colors.HEADER)

    runner.run_test("Health Check", test_health_check, runner)

    runner.run_test("Register User", register_user, runner)
    runner.run_test("Login Users", login_users, runner)

    runner.run_test("Create Product", create_product, runner)
    runner.run_test("List Products", list_products, runner)

    runner.run_test("Add to Cart", add_to_cart, runner)
    runner.run_test("Cart Impact", view_cart_impact, runner)

    runner.run_test("Create Order", create_order, runner)
    runner.run_test("Verify Stock and Cart", verify_stock_and_cart, runner)
    runner.run_test("Oversell Rejected", oversell_rejected, runner)

    runner.run_test("Owner Cannot Deliver", owner_cannot_deliver, runner)
    runner.run_test("Deliver and Credit Points", deliver_and_credit, runner)
    runner.run_test("Delivered Cannot Cancel", delivered_cannot_cancel, runner)

    runner.run_test("Cancel Restores Stock", cancel_restores_stock, runner)

    runner.run_test("Negative Tests", negative_tests, runner)

    runner.save_report()

    if any(r["status"] != "PASS" for r in runner.results):
        sys.exit(1)

if __name__ == "__main__":
    main()
