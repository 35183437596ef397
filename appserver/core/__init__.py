"""Core infrastructure: configuration, logging, errors and service registry"""
