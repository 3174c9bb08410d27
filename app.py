#!/usr/bin/env python
"""
Flow Map Explorer - Streamlit entrypoint.
Version: 0.1.0
"""

from flowmap.ui import render_app


def main() -> None:
    render_app()


if __name__ == "__main__":
    main()
