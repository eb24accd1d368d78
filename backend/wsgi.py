# Overview: WSGI entry point.
from liveorders import create_app

app = create_app()
