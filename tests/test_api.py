from services.firestore import POSTS, PURCHASES
from tests.conftest import ARTIST, BUYER, STRANGER, as_user
from tests.test_media import png_base64

CHECKOUT = {
    "postId": "post-1",
    "buyerName": "Ben Ortiz",
    "buyerEmail": "ben@example.com",
    "buyerPhone": "9876543210",
    "buyerAddress": "12 Lake Road",
    "buyerCity": "Pune",
    "buyerState": "MH",
    "buyerPincode": "411001",
}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "OK"


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


class TestPosts:
    def test_create_and_fetch(self, client):
        response = client.post("/api/posts/create", headers=as_user(ARTIST), json={
            "userName": "Asha Rao",
            "imageUrl": "https://cdn.example.com/posts/dawn.jpg",
            "title": "Dawn",
            "isForSale": False,
            "price": 300,
        })
        assert response.status_code == 200
        post = response.json()["data"]
        assert post["username"] == "@asha_rao"
        assert post["price"] is None
        assert post["likes"] == 0

        fetched = client.get(f"/api/posts/{post['id']}").json()["data"]
        assert fetched["title"] == "Dawn"

    def test_post_is_published_once_when_acknowledgement_is_lost(self, client, fake_store):
        from google.api_core import exceptions as gexc

        def acknowledgement_lost(_):
            raise gexc.DeadlineExceeded("deadline exceeded")

        fake_store.after("create", acknowledgement_lost)
        response = client.post("/api/posts/create", headers=as_user(ARTIST), json={
            "userName": "Asha Rao",
            "imageUrl": "https://cdn.example.com/posts/dusk.jpg",
            "title": "Dusk",
        })

        assert response.status_code == 200
        post_id = response.json()["data"]["id"]
        assert sorted(k[1] for k in fake_store.docs if k[0] == POSTS) == sorted(["post-1", post_id])

    def test_missing_image_is_400(self, client):
        response = client.post("/api/posts/create", headers=as_user(ARTIST), json={"title": "Nothing"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_feed_is_newest_first_and_paginates(self, client, fake_store):
        for i in range(3):
            fake_store.seed(POSTS, f"later-{i}", {"userId": ARTIST, "createdAt": f"2026-02-0{i + 1}T00:00:00+00:00"})

        first_page = client.get("/api/posts/feed", params={"limit": 2}).json()["data"]
        assert [p["id"] for p in first_page] == ["later-2", "later-1"]

        second_page = client.get("/api/posts/feed", params={"limit": 2, "lastDocId": "later-1"}).json()["data"]
        assert [p["id"] for p in second_page] == ["later-0", "post-1"]

    def test_only_author_can_edit(self, client):
        response = client.put("/api/posts/post-1", headers=as_user(BUYER), json={"title": "Mine now"})
        assert response.status_code == 403

        response = client.put("/api/posts/post-1", headers=as_user(ARTIST), json={"title": "Monsoon II"})
        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Monsoon II"

    def test_delete(self, client, fake_store):
        assert client.delete("/api/posts/post-1", headers=as_user(BUYER)).status_code == 403
        assert client.delete("/api/posts/post-1", headers=as_user(ARTIST)).status_code == 200
        assert fake_store.read(POSTS, "post-1") is None
        assert client.get("/api/posts/post-1").status_code == 404

    def test_like_toggle(self, client):
        liked = client.post("/api/posts/post-1/like").json()["data"]
        assert liked == {"post_id": "post-1", "liked": True, "likes": 1}
        unliked = client.post("/api/posts/post-1/like").json()["data"]
        assert unliked == {"post_id": "post-1", "liked": False, "likes": 0}

    def test_comment_and_share(self, client, fake_store):
        comment = client.post("/api/posts/post-1/comments", json={"userName": "Ben", "text": "Stunning"})
        assert comment.json()["data"]["userId"] == BUYER

        assert client.post("/api/posts/post-1/share").json()["data"]["shares"] == 1
        post = fake_store.read(POSTS, "post-1")
        assert post["comments"] == 1
        assert post["shares"] == 1

    def test_like_missing_post_is_404(self, client):
        response = client.post("/api/posts/nope/like")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Post not found: nope"}


class TestUsers:
    def test_follow_flow(self, client):
        assert client.post(f"/api/users/{ARTIST}/follow").status_code == 200
        assert client.get(f"/api/users/{ARTIST}/is-following").json()["data"] == {"following": True}

        stats = client.get(f"/api/users/{ARTIST}/stats").json()["data"]
        assert stats == {"posts": 1, "followers": 1, "following": 0}

        followers = client.get(f"/api/users/{ARTIST}/followers").json()["data"]["followers"]
        assert [f["id"] for f in followers] == [BUYER]

        assert client.post(f"/api/users/{ARTIST}/unfollow").status_code == 200
        assert client.get(f"/api/users/{ARTIST}/is-following").json()["data"] == {"following": False}

    def test_self_follow_is_403(self, client):
        assert client.post(f"/api/users/{BUYER}/follow").status_code == 403

    def test_search(self, client):
        found = client.get("/api/users/search/Be").json()["data"]
        assert [u["id"] for u in found] == [BUYER]

    def test_update_own_profile_only(self, client):
        assert client.put(f"/api/users/{ARTIST}", json={"bio": "hi"}).status_code == 403

        response = client.put(f"/api/users/{BUYER}", json={"bio": "Collector", "createdAt": "forged"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["bio"] == "Collector"
        assert "createdAt" not in data

    def test_user_posts(self, client):
        posts = client.get(f"/api/users/{ARTIST}/posts").json()["data"]
        assert [p["id"] for p in posts] == ["post-1"]


class TestPurchases:
    def test_order_lifecycle(self, client, notifier):
        created = client.post("/api/purchases", json=CHECKOUT)
        assert created.status_code == 201
        purchase_id = created.json()["data"]["id"]

        view = client.get(f"/api/purchases/{purchase_id}", headers=as_user(ARTIST)).json()["data"]
        assert view["role"] == "seller"
        assert view["allowedTransitions"] == ["confirmed", "cancelled"]

        for status in ["confirmed", "shipped", "delivery_confirmation_pending"]:
            response = client.post(f"/api/purchases/{purchase_id}/status", headers=as_user(ARTIST),
                                   json={"status": status})
            assert response.status_code == 200, response.json()

        response = client.post(f"/api/purchases/{purchase_id}/status", json={"status": "delivered"})
        assert response.json()["data"]["status"] == "delivered"
        assert len(notifier.sent) == 6

        again = client.post(f"/api/purchases/{purchase_id}/status", headers=as_user(ARTIST),
                            json={"status": "cancelled"})
        assert again.status_code == 409
        assert again.json()["success"] is False

    def test_invalid_transition_is_409(self, client, fake_store):
        purchase_id = client.post("/api/purchases", json=CHECKOUT).json()["data"]["id"]
        response = client.post(f"/api/purchases/{purchase_id}/status", headers=as_user(ARTIST),
                               json={"status": "shipped"})
        assert response.status_code == 409
        assert fake_store.read(PURCHASES, purchase_id)["status"] == "pending"

    def test_unknown_status_is_400(self, client):
        purchase_id = client.post("/api/purchases", json=CHECKOUT).json()["data"]["id"]
        response = client.post(f"/api/purchases/{purchase_id}/status", headers=as_user(ARTIST),
                               json={"status": "teleported"})
        assert response.status_code == 400

    def test_stranger_cannot_view(self, client):
        purchase_id = client.post("/api/purchases", json=CHECKOUT).json()["data"]["id"]
        assert client.get(f"/api/purchases/{purchase_id}", headers=as_user(STRANGER)).status_code == 403

    def test_lists(self, client):
        client.post("/api/purchases", json=CHECKOUT)
        mine = client.get("/api/purchases/mine").json()["data"]
        requests = client.get("/api/purchases/requests", headers=as_user(ARTIST)).json()["data"]
        pending = client.get("/api/purchases/requests", headers=as_user(ARTIST),
                             params={"status": "confirmed"}).json()["data"]

        assert len(mine) == 1
        assert [p["id"] for p in requests] == [mine[0]["id"]]
        assert pending == []

    def test_repeated_request_id(self, client, notifier):
        body = {**CHECKOUT, "requestId": "tap-1"}
        first = client.post("/api/purchases", json=body).json()["data"]
        second = client.post("/api/purchases", json=body).json()["data"]
        assert first["id"] == second["id"]
        assert len(notifier.sent) == 2

    def test_store_outage_is_503(self, client, fake_store):
        from google.api_core import exceptions as gexc

        def unavailable(_):
            raise gexc.ServiceUnavailable("unavailable")

        fake_store.on("create", unavailable, times=3)
        response = client.post("/api/purchases", json=CHECKOUT)
        assert response.status_code == 503

    def test_send_status_update(self, client, notifier):
        purchase_id = client.post("/api/purchases", json=CHECKOUT).json()["data"]["id"]
        notifier.sent.clear()

        response = client.post("/api/purchases/send-status-update", headers=as_user(ARTIST),
                               json={"purchaseId": purchase_id})
        assert response.json()["success"] is True
        assert [n.recipient_email for n in notifier.sent] == ["ben@example.com"]
        assert notifier.sent[0].fields["status"] == "pending"

    def test_status_update_email_needs_a_party_to_the_purchase(self, client, notifier):
        purchase_id = client.post("/api/purchases", json=CHECKOUT).json()["data"]["id"]
        notifier.sent.clear()

        response = client.post("/api/purchases/send-status-update", headers=as_user(STRANGER),
                               json={"purchaseId": purchase_id})
        assert response.status_code == 403
        assert notifier.sent == []

    def test_status_update_email_cannot_target_arbitrary_addresses(self, client, notifier):
        response = client.post("/api/purchases/send-status-update", json={
            "email": "anyone@example.com", "name": "Anyone", "artworkTitle": "Spam", "status": "shipped"})
        assert response.status_code == 400
        assert notifier.sent == []

    def test_resend_purchase_notification(self, client, notifier):
        purchase_id = client.post("/api/purchases", json=CHECKOUT).json()["data"]["id"]
        notifier.sent.clear()

        response = client.post("/api/purchases/send-notification", json={"purchaseId": purchase_id})
        assert response.json()["data"] == {"artistEmailSent": True, "buyerEmailSent": True}
        assert sorted(n.recipient_email for n in notifier.sent) == ["asha@example.com", "ben@example.com"]

        seller = client.post("/api/purchases/send-notification", headers=as_user(ARTIST),
                             json={"purchaseId": purchase_id})
        assert seller.status_code == 403


class TestStorage:
    def test_upload_info_delete(self, client):
        response = client.post("/api/storage/upload", headers=as_user(ARTIST),
                               json={"userId": ARTIST, "imageBase64": png_base64()})
        assert response.status_code == 200
        public_id = response.json()["data"]["publicId"]

        info = client.get(f"/api/storage/info/{public_id}", headers=as_user(ARTIST)).json()["data"]
        assert info["owner"] == ARTIST

        assert client.delete(f"/api/storage/{public_id}", headers=as_user(BUYER)).status_code == 403
        assert client.delete(f"/api/storage/{public_id}", headers=as_user(ARTIST)).status_code == 200

    def test_upload_for_someone_else_is_403(self, client):
        response = client.post("/api/storage/upload", json={"userId": ARTIST, "imageBase64": png_base64()})
        assert response.status_code == 403

    def test_upload_without_data_is_400(self, client):
        response = client.post("/api/storage/upload", json={"userId": BUYER})
        assert response.status_code == 400


def test_social_publish_requires_post_data(client):
    assert client.post("/api/social/publish", json={}).status_code == 400
    response = client.post("/api/social/publish", json={"postData": {"caption": "hi"}, "platforms": ["twitter"]})
    assert response.json()["data"]["twitter"]["success"] is True


class TestAuth:
    def test_login_sets_session_cookie(self, client, monkeypatch):
        from routes import auth as auth_routes

        monkeypatch.setattr(auth_routes.auth, "verify_id_token", lambda **kwargs: {"uid": BUYER})
        monkeypatch.setattr(auth_routes.auth, "create_session_cookie", lambda token, expires_in: b"cookie-value")

        response = client.post("/auth/login", json={"id_token": "id-token"})
        assert response.json() == {"success": True, "user_id": BUYER}
        assert response.cookies.get("session") == "cookie-value"

    def test_login_with_bad_token_is_401(self, client, monkeypatch):
        from routes import auth as auth_routes

        def reject(**kwargs):
            raise ValueError("malformed token")

        monkeypatch.setattr(auth_routes.auth, "verify_id_token", reject)
        assert client.post("/auth/login", json={"id_token": "junk"}).status_code == 401

    def test_logout_revokes_tokens(self, client, monkeypatch):
        from routes import auth as auth_routes

        revoked = []
        monkeypatch.setattr(auth_routes.auth, "revoke_refresh_tokens", revoked.append)
        assert client.post("/auth/logout").json() == {"success": True}
        assert revoked == [BUYER]

    def test_verify_returns_profile(self, client):
        user = client.get("/auth/verify").json()["user"]
        assert user["uid"] == BUYER
        assert user["UserName"] == "Ben Ortiz"
