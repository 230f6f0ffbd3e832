# Overview: WSGI entry point; also what FLASK_APP points at for the CLI.

from creditledger import create_app

app = create_app()
