import os

from scrumpoker import create_app, socketio
from scrumpoker.services.housekeeping import flush_team_defaults

app = create_app()

if __name__ == '__main__':
    try:
        socketio.run(app, host=os.environ.get('HOST', '127.0.0.1'), port=int(os.environ.get('PORT', '3000')), debug=True)
    finally:
        # Flush team defaults on shutdown
        flush_team_defaults(app, app.extensions['scrumpoker'])
