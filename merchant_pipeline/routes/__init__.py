"""Routes API"""
