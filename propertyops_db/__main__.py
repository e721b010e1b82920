from .cli import app

app(prog_name="propertyops-db")
