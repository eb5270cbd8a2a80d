DEMO_INSTRUCTOR = {
    "name": "Demo Instructor",
    "email": "instructor@example.com",
    "password": "Instructor123!",
    "bio": "Web3 educator and hackathon mentor",
}

DEMO_COURSE = {
    "title": "Web3 Fundamentals - Demo Course",
    "slug": "web3-fundamentals-demo",
    "description": (
        "A demo course to showcase the learning platform. Learn blockchain "
        "basics, smart contracts and decentralized applications through video "
        "lessons that track your progress."
    ),
    "short_description": "A demo course with video lessons and a graded quiz.",
    "thumbnail": "/courses/web3-demo.jpg",
    "level": "beginner",
    "category": "Web3",
    "tags": ["Web3", "Blockchain", "Demo", "Beginner"],
    "price": 0,
    "is_free": True,
    "is_published": True,
    "modules": [
        {
            "title": "Getting Started with Web3",
            "description": "Introduction to blockchain and Web3 concepts",
            "lessons": [
                {
                    "title": "Introduction to Blockchain",
                    "description": "What a blockchain is and why it matters.",
                    "video_url": "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4",
                    "video_duration": 596,
                },
                {
                    "title": "Understanding Smart Contracts",
                    "description": "Programs that run on the blockchain.",
                    "video_url": "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/ElephantsDream.mp4",
                    "video_duration": 653,
                },
            ],
            "quiz": {
                "title": "Blockchain Basics Check",
                "passing_score": 70,
                "questions": [
                    {
                        "text": "What links each block to the chain?",
                        "type": "single_choice",
                        "options": [
                            "The hash of the previous block",
                            "The miner's name",
                            "A shared password",
                        ],
                        "answer": [0],
                        "points": 1,
                    },
                    {
                        "text": "Which are properties of a public blockchain?",
                        "type": "multiple_choice",
                        "options": [
                            "Decentralization",
                            "Transparency",
                            "Single owner",
                            "Immutability",
                        ],
                        "answer": [0, 1, 3],
                        "points": 2,
                    },
                    {
                        "text": "Smart contracts run on the blockchain.",
                        "type": "true_false",
                        "options": ["True", "False"],
                        "answer": [0],
                        "points": 1,
                    },
                ],
            },
        },
        {
            "title": "Building Your First DApp",
            "description": "Tooling and deployment",
            "lessons": [
                {
                    "title": "Setting Up Your Development Environment",
                    "description": "Install the tools used in the rest of the course.",
                    "video_url": "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/Sintel.mp4",
                    "video_duration": 888,
                },
                {
                    "title": "Deploying Your First Contract",
                    "description": "Ship a contract to a test network.",
                    "video_url": "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/TearsOfSteel.mp4",
                    "video_duration": 734,
                },
            ],
        },
    ],
}
