"""Telephony webhook routers"""
