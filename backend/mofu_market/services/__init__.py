"""Transactional services wrapping the pricing and settlement engine."""
