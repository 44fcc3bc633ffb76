"""Test doubles for pastelink tests"""
