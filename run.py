#!/usr/bin/env python3
"""Backup runner: python run.py <database>"""
from xtraship import main

if __name__ == '__main__':
    main()
