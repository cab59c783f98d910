"""
API Routes - HTTP endpoint handlers
"""
