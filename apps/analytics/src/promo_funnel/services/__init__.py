"""Service layer for promo code analytics."""
