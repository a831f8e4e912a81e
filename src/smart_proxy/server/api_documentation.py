TITLE = "AAD SMART on FHIR proxy"

SUMMARY = (
    "Authorization-code proxy that carries SMART on FHIR launch context through "
    "an identity provider without native support for it."
)

TAGS_METADATA = [
    {
        "name": "aad-proxy",
        "description": (
            "The three legs of the proxied flow: **authorize** redirects to the IdP, "
            "**callback** redirects back to the client, **token** exchanges the code."
        ),
    },
    {
        "name": "health",
        "description": "Liveness and IdP metadata status.",
    },
]
