#!/usr/bin/env python3
"""
Runner script for the Realtime Voice Translator.

This script provides a simple way to run the translator from a checkout.
For more advanced usage, import the module and create a custom configuration.

Usage:
    python run_translator.py --source-label "🇨🇳 Chinese" --source-text 中文
"""

import sys
from realtime_translator import main


if __name__ == '__main__':
    sys.exit(main())
