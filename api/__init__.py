APIS = {
    "HackerNewsFirebaseClient": "api.hn_api_firebase",
    "HackerNewsLocalClient": "api.hn_api_local",
}
