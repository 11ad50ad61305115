from psysite import create_app

app = create_app()
