"""usufruit - authorization, circulation and search core for community lending libraries."""

__version__ = "0.1.0"
