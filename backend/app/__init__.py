"""Live signal service: exchange clients, state and services."""
