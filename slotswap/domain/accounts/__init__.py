"""Accounts domain - users, registration and login"""
