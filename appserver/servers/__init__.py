"""Server implementations"""
