"""
Runtime configuration read from the environment.

Upstash Redis uses its standard REST variable names. When they are unset
the client keeps cart state in process memory.
"""

import os

UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")

# Namespace for every key written to Redis (one per storefront origin)
STOREFRONT_ORIGIN = os.environ.get("STOREFRONT_ORIGIN", "storefront")

STOREFRONT_API_URL = os.environ.get("STOREFRONT_API_URL", "http://localhost:8080/api")
API_TIMEOUT = float(os.environ.get("API_TIMEOUT", "10.0"))

# 0 disables expiry of cart snapshots
CART_TTL_SECONDS = int(os.environ.get("CART_TTL_SECONDS", "0"))

# Flat shipping fee added to the order total at checkout
SHIPPING_FEE = os.environ.get("SHIPPING_FEE", "10")
