"""
Loop Review Automation - Web Server Entry Point
===============================================

Run this to start the API server:
    python main.py

Then open http://127.0.0.1:8000/docs in your browser.

To run one dispatch cycle (cron):
    python run_automation.py
"""

import logging

import uvicorn


def main():
    """Start the web server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("\n" + "=" * 50)
    print("   Loop Review - Automation API")
    print("=" * 50)
    print("\n   Starting server at http://127.0.0.1:8000")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "loopreview.web.app:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        log_level="info"
    )


if __name__ == "__main__":
    main()
