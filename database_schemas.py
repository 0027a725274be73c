USERS_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    username TEXT UNIQUE NOT NULL,
    display_name TEXT NOT NULL,
    bio TEXT,
    avatar_url TEXT,
    cover_url TEXT,
    is_verified BOOLEAN NOT NULL DEFAULT 0,
    is_private BOOLEAN NOT NULL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
)
'''

USERS_ADMIN_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS users_admin (
    user_id TEXT PRIMARY KEY,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
)
'''

USERS_REGISTRATION_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS users_registration (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT UNIQUE NOT NULL,
    id_card_url TEXT,
    birth_place TEXT,
    birth_date TEXT,
    zone TEXT CHECK (zone IN ('DPD', 'DPW', 'DPP')),
    latest_education TEXT,
    address TEXT,
    nik TEXT,
    phone_number TEXT,
    referral TEXT,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'active', 'rejected')),
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
)
'''

USERS_MEMBER_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS users_member (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT UNIQUE NOT NULL,
    id_card_url TEXT,
    birth_place TEXT,
    birth_date TEXT,
    zone TEXT,
    latest_education TEXT,
    address TEXT,
    nik TEXT,
    phone_number TEXT,
    referral TEXT,
    position TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
)
'''

USER_FOLLOWS_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS user_follows (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    follower_id TEXT NOT NULL,
    following_id TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (follower_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (following_id) REFERENCES users(id) ON DELETE CASCADE,
    UNIQUE(follower_id, following_id),
    CHECK (follower_id != following_id)
)
'''

FORUMS_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS forums (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    creator_id TEXT,
    name TEXT NOT NULL,
    description TEXT,
    avatar_url TEXT,
    cover_url TEXT,
    is_coi BOOLEAN NOT NULL DEFAULT 0,
    members_count INTEGER NOT NULL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (creator_id) REFERENCES users(id) ON DELETE SET NULL
)
'''

FORUM_MEMBERS_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS forum_members (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    forum_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('core', 'member')),
    is_approved BOOLEAN NOT NULL DEFAULT 0,
    joined_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    approved_at DATETIME,
    FOREIGN KEY (forum_id) REFERENCES forums(id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    UNIQUE(forum_id, user_id)
)
'''

POSTS_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    forum_id INTEGER,
    type TEXT NOT NULL CHECK (type IN ('personal', 'article', 'polling')),
    original_post_id INTEGER,
    likes_count INTEGER NOT NULL DEFAULT 0,
    comments_count INTEGER NOT NULL DEFAULT 0,
    shares_count INTEGER NOT NULL DEFAULT 0,
    bookmarks_count INTEGER NOT NULL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (forum_id) REFERENCES forums(id) ON DELETE SET NULL,
    FOREIGN KEY (original_post_id) REFERENCES posts(id) ON DELETE SET NULL
)
'''

POSTS_PERSONAL_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS posts_personal (
    post_id INTEGER PRIMARY KEY,
    content TEXT NOT NULL,
    FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE
)
'''

POSTS_ARTICLE_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS posts_article (
    post_id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE
)
'''

POSTS_POLLING_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS posts_polling (
    post_id INTEGER PRIMARY KEY,
    question TEXT NOT NULL,
    start_datetime TEXT NOT NULL,
    end_datetime TEXT NOT NULL,
    is_anonymous BOOLEAN NOT NULL DEFAULT 0,
    allow_multiple_choices BOOLEAN NOT NULL DEFAULT 0,
    FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE
)
'''

POLLING_OPTIONS_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS polling_options (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    polling_post_id INTEGER NOT NULL,
    text TEXT NOT NULL,
    votes_count INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (polling_post_id) REFERENCES posts_polling(post_id) ON DELETE CASCADE
)
'''

# user_id is NULL for anonymous polls; NULLs never collide under UNIQUE
POLLING_VOTES_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS polling_votes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    polling_post_id INTEGER NOT NULL,
    user_id TEXT,
    option_id INTEGER NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (polling_post_id) REFERENCES posts_polling(post_id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE SET NULL,
    FOREIGN KEY (option_id) REFERENCES polling_options(id) ON DELETE CASCADE,
    UNIQUE(polling_post_id, user_id, option_id)
)
'''

POST_MEDIA_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS post_media (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id INTEGER NOT NULL,
    url TEXT NOT NULL,
    type TEXT NOT NULL,
    size INTEGER NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE
)
'''

POST_LIKES_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS post_likes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    UNIQUE(post_id, user_id)
)
'''

POST_BOOKMARKS_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS post_bookmarks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    UNIQUE(post_id, user_id)
)
'''

COMMENTS_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS comments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    post_id INTEGER NOT NULL,
    parent_comment_id INTEGER,
    content TEXT NOT NULL,
    is_deleted BOOLEAN NOT NULL DEFAULT 0,
    likes_count INTEGER NOT NULL DEFAULT 0,
    bookmarks_count INTEGER NOT NULL DEFAULT 0,
    replies_count INTEGER NOT NULL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE,
    FOREIGN KEY (parent_comment_id) REFERENCES comments(id) ON DELETE CASCADE
)
'''

COMMENT_LIKES_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS comment_likes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    comment_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (comment_id) REFERENCES comments(id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    UNIQUE(comment_id, user_id)
)
'''

COMMENT_BOOKMARKS_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS comment_bookmarks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    comment_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (comment_id) REFERENCES comments(id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    UNIQUE(comment_id, user_id)
)
'''

AGENDA_TABLE_SCHEMA = '''
CREATE TABLE IF NOT EXISTS agenda (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    forum_id INTEGER,
    image_url TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    start_date TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (forum_id) REFERENCES forums(id) ON DELETE SET NULL
)
'''

ALL_TABLE_SCHEMAS = [
    USERS_TABLE_SCHEMA,
    USERS_ADMIN_TABLE_SCHEMA,
    USERS_REGISTRATION_TABLE_SCHEMA,
    USERS_MEMBER_TABLE_SCHEMA,
    USER_FOLLOWS_TABLE_SCHEMA,
    FORUMS_TABLE_SCHEMA,
    FORUM_MEMBERS_TABLE_SCHEMA,
    POSTS_TABLE_SCHEMA,
    POSTS_PERSONAL_TABLE_SCHEMA,
    POSTS_ARTICLE_TABLE_SCHEMA,
    POSTS_POLLING_TABLE_SCHEMA,
    POLLING_OPTIONS_TABLE_SCHEMA,
    POLLING_VOTES_TABLE_SCHEMA,
    POST_MEDIA_TABLE_SCHEMA,
    POST_LIKES_TABLE_SCHEMA,
    POST_BOOKMARKS_TABLE_SCHEMA,
    COMMENTS_TABLE_SCHEMA,
    COMMENT_LIKES_TABLE_SCHEMA,
    COMMENT_BOOKMARKS_TABLE_SCHEMA,
    AGENDA_TABLE_SCHEMA,
]
