"""Adapters for the external collaborators of the dispatch core.

Submodules are imported directly so that importing one adapter never pulls
in the native dependencies of another.
"""
