"""
API routes for the adventure engine
"""
