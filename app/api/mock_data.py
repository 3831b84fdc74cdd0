"""
Sample feedback for exercising a development deployment.
"""

MOCK_FEEDBACK = [
    # Recurring crash, reported from several channels
    {
        'content': "Crash on resume (Android): open the app, press Home, reopen from Recents "
                   "and it force closes right after the splash screen. Pixel 6, v3.2.1.",
        'source': 'support',
        'user': 'mobile_user1',
    },
    {
        'content': "App closes instantly when returning from background. Started after updating "
                   "to v3.2.1 on a Samsung S23.",
        'source': 'github',
        'user': 'mobile_dev',
    },
    {
        'content': "Every time I switch back to the app it crashes, no error dialog at all.",
        'source': 'discord',
        'user': 'night_owl',
    },
    # Shared bugs
    {
        'content': "The app keeps logging me out randomly, two or three times a day.",
        'source': 'support',
        'user': 'logout_user',
        'link': 'https://support.example.com/tickets/77777',
    },
    {
        'content': "Dark mode toggle not working, the theme stays light after switching.",
        'source': 'twitter',
        'user': '@theme_fan',
    },
    {
        'content': "Dashboard is slow to load, takes over ten seconds on wifi.",
        'source': 'email',
        'user': 'ops_lead',
    },
    {
        'content': "Docs outdated: the API examples return 404 because the endpoints changed.",
        'source': 'github',
        'user': 'integrator',
    },
    # Single-user support cases
    {
        'content': "My subscription was cancelled without notice and I can't access my account.",
        'source': 'email',
        'user': 'paying_customer',
    },
    {
        'content': "I was charged twice this month, order number: A-10442.",
        'source': 'support',
        'user': 'billing_question',
    },
    # Positive feedback
    {
        'content': "Great product! Love the new features you added.",
        'source': 'twitter',
        'user': '@happy_user',
        'link': 'https://twitter.com/company/status/1234567890',
    },
    {
        'content': "Thanks for the quick fix on the last issue. Much appreciated!",
        'source': 'discord',
        'user': 'grateful_user',
    },
    {
        'content': "Performance has improved significantly. Good work team!",
        'source': 'github',
        'user': 'performance_tester',
    },
]
