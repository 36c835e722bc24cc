"""
Root conftest -- adds dashboard/ and project root to sys.path so tests
can import the dashboard app module and the engine packages.
"""
import sys
import os

_root = os.path.dirname(__file__)
sys.path.insert(0, os.path.join(_root, "dashboard"))
sys.path.insert(0, _root)
