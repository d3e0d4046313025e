"""Upstream data providers and external collaborator interfaces."""
