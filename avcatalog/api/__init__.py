"""JSON HTTP API"""
