"""HTTP / WebSocket 路由 (API Routers)"""
