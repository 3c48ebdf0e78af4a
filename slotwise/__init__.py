"""
Natural-language scheduling engine
"""
