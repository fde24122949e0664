"""Deskflow API worker: latest version lookup and the popularity contest."""
