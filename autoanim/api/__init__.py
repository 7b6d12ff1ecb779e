"""HTTP 接口 (FastAPI)"""
