"""Brahmand CRM backend"""
