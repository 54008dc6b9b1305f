from rendezvous import create_app, db, get_services, socketio

app = create_app()

if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    get_services(app).start_background_tasks(app, socketio)
    # Use SocketIO server to enable websockets; the reloader would start the timers twice
    socketio.run(
        app,
        host=app.config['HOST'],
        port=app.config['PORT'],
        use_reloader=False,
        allow_unsafe_werkzeug=True,
    )
