#!/usr/bin/env python3
"""
agentbrowser entry point

    python main.py open example.com
    python main.py snapshot -i
    python main.py click @e2
"""
import sys
import os
# Windows consoles default to a legacy code page
if sys.platform == 'win32':
    sys.stdout.reconfigure(encoding='utf-8')
    sys.stderr.reconfigure(encoding='utf-8')
    os.environ['PYTHONIOENCODING'] = 'utf-8'

from agentbrowser.main import main

if __name__ == "__main__":
    sys.exit(main())
