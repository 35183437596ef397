"""Session bridge, service and request dependencies"""
