"""Slots domain - the slot registry"""
