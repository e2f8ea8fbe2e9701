def create_room(client):
    return client.get("/api/create-room").json()["roomId"]


def join(ws, room_id):
    ws.send_json({"event": "join-room", "data": room_id})
    history = ws.receive_json()
    assert history["event"] == "previous-messages"
    confirmation = ws.receive_json()
    assert confirmation["event"] == "joined-successfully"
    assert confirmation["data"]["roomId"] == room_id
    return history["data"], confirmation["data"]["userCount"]


def test_two_party_chat_and_teardown(client):
    room_id = create_room(client)

    with client.websocket_connect("/ws") as b:
        with client.websocket_connect("/ws") as a:
            assert join(a, room_id) == ([], 1)
            assert join(b, room_id) == ([], 2)
            assert a.receive_json() == {
                "event": "user-joined",
                "data": {"message": "Someone joined the chat", "userCount": 2},
            }

            b.send_json({"event": "send-message", "data": {"message": "hi"}})
            to_a = a.receive_json()
            to_b = b.receive_json()

            assert to_a["event"] == "new-message"
            assert to_a["data"]["message"] == "hi"
            assert to_a == to_b

        assert b.receive_json() == {
            "event": "user-left",
            "data": {"message": "Someone left the chat", "userCount": 1},
        }
        assert client.get(f"/api/rooms/{room_id}").json()["userCount"] == 1

    assert client.get(f"/api/rooms/{room_id}").status_code == 404
    with client.websocket_connect("/ws") as late:
        late.send_json({"event": "join-room", "data": room_id})
        assert late.receive_json() == {"event": "error", "data": "Room not found"}


def test_third_connection_is_turned_away(client):
    room_id = create_room(client)

    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        join(a, room_id)
        join(b, room_id)
        a.receive_json()

        with client.websocket_connect("/ws") as c:
            c.send_json({"event": "join-room", "data": room_id})
            assert c.receive_json() == {"event": "error", "data": "Room is full"}

            details = client.get(f"/api/rooms/{room_id}").json()
            assert details["userCount"] == 2
            assert details["isFull"] is True

            # The rejected connection stays unjoined: its messages go nowhere.
            c.send_json({"event": "send-message", "data": {"message": "let me in"}})
            a.send_json({"event": "send-message", "data": {"message": "members only"}})
            assert b.receive_json()["data"]["message"] == "members only"


def test_history_replayed_to_late_joiner(client):
    room_id = create_room(client)

    with client.websocket_connect("/ws") as a:
        join(a, room_id)
        for text in ("one", "two"):
            a.send_json({"event": "send-message", "data": {"message": text}})
            assert a.receive_json()["data"]["message"] == text

        with client.websocket_connect("/ws") as b:
            history, count = join(b, room_id)
            assert count == 2
            assert [record["message"] for record in history] == ["one", "two"]
            assert all(record["type"] == "text" for record in history)


def test_typing_reaches_only_the_other_member(client):
    room_id = create_room(client)

    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        join(a, room_id)
        join(b, room_id)
        a.receive_json()

        a.send_json({"event": "typing"})
        assert b.receive_json()["event"] == "user-typing"
        a.send_json({"event": "stop-typing"})
        assert b.receive_json()["event"] == "user-stop-typing"

        a.send_json({"event": "send-message", "data": {"message": "done"}})
        # The typing signals were not echoed, so the sender's next frame is its message.
        assert a.receive_json()["event"] == "new-message"


def test_malformed_frames_are_ignored(client):
    room_id = create_room(client)

    with client.websocket_connect("/ws") as a:
        a.send_json({"event": "send-message", "data": {"message": "before join"}})
        a.send_text("not json")
        a.send_json({"event": "join-room", "data": "missing1"})
        assert a.receive_json() == {"event": "error", "data": "Room not found"}

        join(a, room_id)
        a.send_json({"event": "bogus"})
        a.send_json({"event": "send-message"})
        a.send_json({"event": "send-message", "data": {"message": ""}})
        a.send_json({"event": "send-message", "data": {"message": "ok"}})
        assert a.receive_json()["data"]["message"] == "ok"


def test_upload_is_broadcast_to_room(client):
    room_id = create_room(client)

    with client.websocket_connect("/ws") as a:
        join(a, room_id)

        response = client.post(f"/api/upload/{room_id}", files={"file": ("cat.png", b"\x89PNG")})
        assert response.status_code == 200

        shared = a.receive_json()
        assert shared["event"] == "file-shared"
        assert shared["data"]["type"] == "file"
        assert shared["data"]["fileName"] == "cat.png"
        assert shared["data"]["fileSize"] == 4
        assert shared["data"]["downloadUrl"] == response.json()["downloadUrl"]
        assert shared["data"]["sender"] == "anonymous"


def test_health_counts_live_connections(client):
    with client.websocket_connect("/ws") as a:
        a.send_json({"event": "join-room", "data": "missing1"})
        a.receive_json()
        assert client.get("/api/health").json()["connections"] == 1


def test_binary_frame_keeps_connection_open(client):
    room_id = create_room(client)

    with client.websocket_connect("/ws") as a:
        a.send_bytes(b"\x00\x01")
        assert join(a, room_id) == ([], 1)
        assert client.get("/api/health").json()["connections"] == 1
        assert client.get(f"/api/rooms/{room_id}").json()["userCount"] == 1
