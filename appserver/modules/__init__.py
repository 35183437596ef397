"""Built-in application modules"""
