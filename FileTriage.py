#!/usr/bin/env python3
# -*- coding: UTF-8 -*-
"""
FileTriage - static identification reports for uploaded binary artifacts.

1. CLI Mode: analyzes the file given with --input-file and prints its report.
2. Server Mode (--server): serves an upload page and a POST /upload endpoint
   that stores the artifact and answers with the JSON report.

Equivalent to the installed ``filetriage`` console script.
"""
from filetriage.main import main

if __name__ == "__main__":
    main()
