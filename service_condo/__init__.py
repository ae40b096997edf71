"""
Condominium back-office API service.
"""
