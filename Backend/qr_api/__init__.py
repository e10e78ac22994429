"""QR code admin backend for Shopify storefronts."""
