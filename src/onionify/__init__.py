"""Onionify: serve one site on clearnet and .onion hostnames consistently."""

__version__ = "1.2.0"
