"""HTTP routers, one per resource, mounted under /api by server.py"""
