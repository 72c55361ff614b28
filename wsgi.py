"""WSGI entry point (`wsgi:app`). Run directly for a local dev server."""
import os

from chama_disputes import create_app

app = create_app(os.getenv('FLASK_ENV', 'development'))

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        # Never on in production
        debug=os.getenv('FLASK_DEBUG', 'false').lower() in ('true', '1', 'yes')
    )
