from duwalk.cli import app

app()
