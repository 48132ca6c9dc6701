from migrations.cli import app

app(prog_name="migrations")
