# ABOUTME: Canned Google Books volumes API responses for provider tests.
# ABOUTME: One multi-volume search result and an empty result.

VOLUMES_RESPONSE = {
    "kind": "books#volumes",
    "totalItems": 2,
    "items": [
        {
            "id": "B1hSG45JCX4C",
            "volumeInfo": {
                "title": "Dune Messiah",
                "authors": ["Frank Herbert"],
                "publishedDate": "1969",
            },
        },
        {
            "id": "ydQiDQAAQBAJ",
            "volumeInfo": {
                "title": "Dune",
                "authors": ["Frank Herbert"],
                "publisher": "Penguin",
                "publishedDate": "2019-10-01",
                "description": "Set on the desert planet Arrakis.",
                "industryIdentifiers": [
                    {"type": "ISBN_10", "identifier": "0593099322"},
                    {"type": "ISBN_13", "identifier": "9780593099322"},
                    {"type": "OTHER", "identifier": "PKEY:1234"},
                ],
                "pageCount": 688,
                "categories": ["Fiction"],
                "language": "en",
                "imageLinks": {
                    "smallThumbnail": "http://books.google.com/books/content?id=ydQ&zoom=5",
                    "thumbnail": "http://books.google.com/books/content?id=ydQ&zoom=1",
                    "large": "http://books.google.com/books/content?id=ydQ&zoom=4",
                },
                "averageRating": 4.5,
                "ratingsCount": 120,
            },
        },
    ],
}

VOLUMES_RESPONSE_EMPTY = {"kind": "books#volumes", "totalItems": 0}
