from cheesehouse import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # SocketIO server so the staff dashboard feed works in dev
    socketio.run(app, debug=app.config.get('ENV_NAME') != 'production')
