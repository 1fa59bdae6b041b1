"""HTTP transport for the external source server"""
