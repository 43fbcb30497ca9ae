from csvtail.cli import app

app()
