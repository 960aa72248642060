"""Swaps domain - the swap negotiator"""
