"""Wallet custody: user profiles (sqlite), the encrypted key vault and wallet provisioning."""
