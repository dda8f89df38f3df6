from livequiz import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Use SocketIO server to enable websockets in dev; the web client expects port 5000
    socketio.run(app, host='0.0.0.0', port=5000, debug=True)
