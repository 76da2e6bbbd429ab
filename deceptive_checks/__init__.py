"""Periodic browser checks for deceptive-site interstitials on a domain fleet."""

__version__ = "0.1.0"
